"""Request headers and cookies for authenticated audits."""

from __future__ import annotations

import json
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from webgate.errors import UsageError


@dataclass(frozen=True)
class AuditAuth:
    headers: dict[str, str] = field(default_factory=dict)
    cookies: list[tuple[str, str]] = field(default_factory=list)

    def cookie_header(self) -> str | None:
        if not self.cookies:
            return None
        return "; ".join(f"{name}={value}" for name, value in self.cookies)


def parse_header_entry(entry: str) -> tuple[str, str]:
    trimmed = entry.strip()
    name, sep, value = trimmed.partition(":")
    name, value = name.strip(), value.strip()
    if not sep or not name or not value:
        raise UsageError(f'Invalid --header value: {entry}. Expected "Name: Value".')
    return name, value


def parse_cookie_entry(entry: str) -> tuple[str, str]:
    first_pair = entry.strip().split(";")[0].strip()
    name, sep, value = first_pair.partition("=")
    name, value = name.strip(), value.strip()
    if not sep or not name or not value:
        raise UsageError(f'Invalid --cookie value: {entry}. Expected "name=value".')
    return name, value


def _split_env(raw: str, pattern: str, pair_separator: str) -> list[str]:
    trimmed = raw.strip()
    if not trimmed:
        return []
    if trimmed.startswith("{") or trimmed.startswith("["):
        try:
            parsed = json.loads(trimmed)
        except json.JSONDecodeError as exc:
            raise UsageError(f"Invalid JSON in auth environment variable: {exc}") from exc
        if isinstance(parsed, dict):
            return [f"{name}{pair_separator}{value}" for name, value in parsed.items()]
        return [str(item) for item in parsed]
    return [part.strip() for part in re.split(pattern, trimmed) if part.strip()]


def parse_audit_auth(
    cli_headers: list[str],
    cli_cookies: list[str],
    env: Mapping[str, str] | None = None,
) -> AuditAuth | None:
    """Merge --header/--cookie flags with WEBGATE_AUTH_* environment variables."""
    env = os.environ if env is None else env

    header_entries = list(cli_headers)
    if env.get("WEBGATE_AUTH_HEADER"):
        header_entries.append(env["WEBGATE_AUTH_HEADER"])
    if env.get("WEBGATE_AUTH_HEADERS"):
        header_entries.extend(_split_env(env["WEBGATE_AUTH_HEADERS"], r"\r?\n", ": "))

    cookie_entries = list(cli_cookies)
    if env.get("WEBGATE_AUTH_COOKIE"):
        cookie_entries.append(env["WEBGATE_AUTH_COOKIE"])
    if env.get("WEBGATE_AUTH_COOKIES"):
        cookie_entries.extend(_split_env(env["WEBGATE_AUTH_COOKIES"], r"[;\r\n]+", "="))

    headers = dict(parse_header_entry(entry) for entry in header_entries)
    cookies = [parse_cookie_entry(entry) for entry in cookie_entries]
    if not headers and not cookies:
        return None
    return AuditAuth(headers=headers, cookies=cookies)

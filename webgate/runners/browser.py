"""
Playwright browser session, runtime signal capture, and screenshots.
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from webgate.auth import AuditAuth
from webgate.config import Config, Screenshot
from webgate.fsutil import ensure_dir
from webgate.retry import retry
from webgate.urls import resolve_screenshot_url

logger = logging.getLogger(__name__)

MAX_CONSOLE_MESSAGES = 200
MAX_JS_ERRORS = 100
MAX_SIGNAL_TEXT_LENGTH = 1000
STABILITY_CSS = "*{animation:none !important;transition:none !important;scroll-behavior:auto !important;}"


def _clip(value: str | None, limit: int = MAX_SIGNAL_TEXT_LENGTH) -> str:
    normalized = re.sub(r"\s+", " ", value or "").strip()
    if len(normalized) > limit:
        return normalized[:limit] + "…"
    return normalized


class RuntimeSignalRecorder:
    """Accumulates console, JS error and network activity emitted by a page."""

    def __init__(self) -> None:
        self._console_total = 0
        self._console_errors = 0
        self._console_warnings = 0
        self._messages: list[dict[str, Any]] = []
        self._js_total = 0
        self._js_errors: list[dict[str, Any]] = []
        self._requests = 0
        self._failed_requests = 0
        self._transfer_bytes = 0
        self._resource_types: dict[str, int] = {}

    def attach(self, page: Any) -> None:
        page.on("console", self.on_console)
        page.on("pageerror", self.on_page_error)
        page.on("request", self.on_request)
        page.on("requestfailed", self.on_request_failed)
        page.on("response", self.on_response)

    def on_console(self, message: Any) -> None:
        kind = str(message.type)
        self._console_total += 1
        if kind == "error":
            self._console_errors += 1
        elif kind in ("warning", "warn"):
            self._console_warnings += 1
        if len(self._messages) >= MAX_CONSOLE_MESSAGES:
            return
        location = message.location or {}
        where = None
        if location.get("url"):
            where = str(location["url"])
            if location.get("lineNumber") is not None:
                where += f":{location['lineNumber']}:{location.get('columnNumber', 0)}"
        self._messages.append({"type": kind, "text": _clip(message.text), "location": where})

    def on_page_error(self, error: Any) -> None:
        self._js_total += 1
        if len(self._js_errors) >= MAX_JS_ERRORS:
            return
        message = getattr(error, "message", None) or str(error)
        stack = getattr(error, "stack", None)
        self._js_errors.append({"message": _clip(message), "stack": _clip(stack) if stack else None})

    def on_request(self, request: Any) -> None:
        self._requests += 1
        resource_type = str(request.resource_type or "other")
        self._resource_types[resource_type] = self._resource_types.get(resource_type, 0) + 1

    def on_request_failed(self, _request: Any = None) -> None:
        self._failed_requests += 1

    def on_response(self, response: Any) -> None:
        raw = (response.headers or {}).get("content-length")
        try:
            size = int(raw)
        except (TypeError, ValueError):
            return
        if size > 0:
            self._transfer_bytes += size

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(
            {
                "console": {
                    "total": self._console_total,
                    "errorCount": self._console_errors,
                    "warningCount": self._console_warnings,
                    "dropped": self._console_total - len(self._messages),
                    "messages": self._messages,
                },
                "jsErrors": {
                    "total": self._js_total,
                    "dropped": self._js_total - len(self._js_errors),
                    "errors": self._js_errors,
                },
                "network": {
                    "totalRequests": self._requests,
                    "failedRequests": self._failed_requests,
                    "transferSizeBytes": self._transfer_bytes,
                    "resourceTypeBreakdown": dict(sorted(self._resource_types.items())),
                },
            }
        )


class PlaywrightSession:
    """Owns the Playwright driver and browser; close() is idempotent."""

    def __init__(self, playwright: Any, browser: Any) -> None:
        self._playwright = playwright
        self._browser = browser
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._browser.close()
        finally:
            self._playwright.stop()


@dataclass
class BrowserSession:
    page: Any
    session: Any
    runtime_signals: RuntimeSignalRecorder


def _navigate(page: Any, url: str, config: Config) -> None:
    settings = config.retry
    retry(
        lambda: page.goto(url, wait_until="networkidle"),
        max_retries=settings.max_retries,
        base_delay_ms=settings.base_delay_ms,
        max_delay_ms=settings.max_delay_ms,
        strategy=settings.strategy,
    )


def _apply_stability_overrides(page: Any) -> None:
    page.add_style_tag(content=STABILITY_CSS)
    page.emulate_media(reduced_motion="reduce")


def open_page(url: str, config: Config, auth: AuditAuth | None = None) -> BrowserSession:
    try:
        from playwright.sync_api import sync_playwright
    except ImportError as exc:
        raise RuntimeError(
            "Playwright unavailable. Install with: pip install playwright && python -m playwright install chromium"
        ) from exc

    logger.debug("Launching Playwright browser")
    playwright = sync_playwright().start()
    try:
        browser = playwright.chromium.launch(headless=True)
    except Exception:
        playwright.stop()
        raise
    session = PlaywrightSession(playwright, browser)
    try:
        settings = config.playwright
        context = browser.new_context(
            viewport={"width": settings.viewport.width, "height": settings.viewport.height},
            user_agent=settings.user_agent,
            locale=settings.locale,
            color_scheme=settings.color_scheme,
        )
        if auth is not None:
            if auth.headers:
                context.set_extra_http_headers(auth.headers)
            if auth.cookies:
                context.add_cookies([{"name": name, "value": value, "url": url} for name, value in auth.cookies])
        page = context.new_page()
        page.set_default_navigation_timeout(config.timeouts.navigation_ms)
        page.set_default_timeout(config.timeouts.action_ms)

        recorder = RuntimeSignalRecorder()
        recorder.attach(page)

        logger.debug("Navigating to %s", url)
        _navigate(page, url, config)
        _apply_stability_overrides(page)
        page.wait_for_timeout(config.timeouts.wait_after_load_ms)
    except Exception:
        session.close()
        raise
    return BrowserSession(page=page, session=session, runtime_signals=recorder)


def sanitize_name(name: str) -> str:
    return re.sub(r"[^a-z0-9_-]", "-", name.lower())


def _capture_screenshot(page: Any, base_url: str, shot: Screenshot, out_dir: Path, config: Config) -> dict[str, Any]:
    url = resolve_screenshot_url(base_url, shot.path)
    logger.debug("Capturing screenshot %s -> %s", shot.name, url)
    _navigate(page, url, config)
    _apply_stability_overrides(page)
    if shot.wait_for_selector:
        page.wait_for_selector(shot.wait_for_selector, timeout=10_000)
    if shot.wait_for_timeout_ms:
        page.wait_for_timeout(shot.wait_for_timeout_ms)
    page.wait_for_timeout(250)

    file_path = out_dir / f"{sanitize_name(shot.name)}.png"
    page.screenshot(path=str(file_path), full_page=shot.full_page)
    return {"name": shot.name, "path": str(file_path), "url": url, "fullPage": shot.full_page}


def capture_screenshots(page: Any, base_url: str, config: Config, out_dir: Path) -> list[dict[str, Any]]:
    ensure_dir(out_dir)
    return [_capture_screenshot(page, base_url, shot, out_dir, config) for shot in config.screenshots]

"""Error taxonomy shared by the CLI and the audit engine."""

from __future__ import annotations


class WebgateError(Exception):
    exit_code = 1


class UsageError(WebgateError):
    """Bad invocation: no resolvable target, bad URL, or a forbidden output path."""

    exit_code = 2


class ConfigError(UsageError):
    """The config file could not be read, parsed, or validated."""

"""
Audit configuration: JSON file validated against pydantic models.

Keys are camelCase on disk (``navigationMs``, ``maxSnapshots``); attributes are
snake_case in Python. Unknown keys are ignored.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from webgate import __version__
from webgate.errors import ConfigError

MAX_SCREENSHOTS = 50
MAX_TIMEOUT_MS = 120_000
MAX_WAIT_TIMEOUT_MS = 30_000
MAX_URL_TARGETS = 50

DEFAULT_TREND_HISTORY_DIR = ".webgate-history"
DEFAULT_TREND_MAX_SNAPSHOTS = 90


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Timeouts(_Model):
    navigation_ms: int = Field(default=30_000, gt=0, le=MAX_TIMEOUT_MS)
    action_ms: int = Field(default=10_000, gt=0, le=MAX_TIMEOUT_MS)
    wait_after_load_ms: int = Field(default=1_000, ge=0, le=MAX_WAIT_TIMEOUT_MS)


class Viewport(_Model):
    width: int = Field(default=1280, gt=0, le=7680)
    height: int = Field(default=720, gt=0, le=4320)


class PlaywrightSettings(_Model):
    viewport: Viewport = Field(default_factory=Viewport)
    user_agent: str = Field(default=f"webgate/{__version__}", min_length=1, max_length=500)
    locale: str = Field(default="en-US", min_length=1, max_length=20)
    color_scheme: Literal["light", "dark"] = "light"


class Screenshot(_Model):
    name: str = Field(min_length=1, max_length=100)
    path: str = Field(min_length=1, max_length=500)
    full_page: bool = True
    wait_for_selector: Annotated[str, Field(min_length=1, max_length=500)] | None = None
    wait_for_timeout_ms: Annotated[int, Field(ge=0, le=MAX_WAIT_TIMEOUT_MS)] | None = None

    @field_validator("path")
    @classmethod
    def _relative_path(cls, value: str) -> str:
        if not value.startswith("/") or "://" in value:
            raise ValueError("Screenshot path must be a relative path starting with /")
        return value


class Budgets(_Model):
    performance: float = Field(default=0.8, ge=0, le=1)
    lcp_ms: float = Field(default=2500, ge=0)
    cls: float = Field(default=0.1, ge=0)
    tbt_ms: float = Field(default=200, ge=0)


class LighthouseSettings(_Model):
    budgets: Budgets = Field(default_factory=Budgets)
    form_factor: Literal["desktop", "mobile"] = "desktop"
    source: Literal["auto", "lighthouse", "pagespeed"] = "auto"
    pagespeed_api_key: str | None = None


class VisualSettings(_Model):
    threshold: float = Field(default=0.01, ge=0, le=1)


class AccessibilitySettings(_Model):
    include_rules: list[str] = Field(default_factory=list)
    exclude_rules: list[str] = Field(default_factory=list)
    include_tags: list[str] = Field(default_factory=list)
    exclude_tags: list[str] = Field(default_factory=list)


class Toggles(_Model):
    a11y: bool = True
    perf: bool = True
    visual: bool = True


class UrlTarget(_Model):
    name: str = Field(min_length=1, max_length=100)
    url: str = Field(min_length=1, max_length=2048)


class TrendSettings(_Model):
    enabled: bool = False
    history_dir: str = Field(default=DEFAULT_TREND_HISTORY_DIR, min_length=1)
    max_snapshots: int = Field(default=DEFAULT_TREND_MAX_SNAPSHOTS, ge=1, le=10_000)


class RetrySettings(_Model):
    max_retries: int = Field(default=1, ge=0, le=10)
    base_delay_ms: int = Field(default=2_000, ge=0, le=MAX_TIMEOUT_MS)
    max_delay_ms: int = Field(default=30_000, ge=0, le=MAX_TIMEOUT_MS)
    strategy: Literal["fixed", "exponential", "decorrelated-jitter"] = "decorrelated-jitter"


class Config(_Model):
    timeouts: Timeouts = Field(default_factory=Timeouts)
    playwright: PlaywrightSettings = Field(default_factory=PlaywrightSettings)
    screenshots: list[Screenshot] = Field(
        default_factory=lambda: [Screenshot(name="home", path="/")],
        min_length=1,
        max_length=MAX_SCREENSHOTS,
    )
    lighthouse: LighthouseSettings = Field(default_factory=LighthouseSettings)
    visual: VisualSettings = Field(default_factory=VisualSettings)
    accessibility: AccessibilitySettings = Field(default_factory=AccessibilitySettings)
    toggles: Toggles = Field(default_factory=Toggles)
    urls: Annotated[list[UrlTarget], Field(min_length=1, max_length=MAX_URL_TARGETS)] | None = None
    trends: TrendSettings = Field(default_factory=TrendSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)


DEFAULT_CONFIG = Config()


def format_validation_error(error: ValidationError) -> str:
    parts = []
    for issue in error.errors():
        location = ".".join(str(item) for item in issue["loc"]) or "config"
        parts.append(f"{location}: {issue['msg']}")
    return "; ".join(parts)


def parse_config(data: object) -> Config:
    try:
        return Config.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config: {format_validation_error(exc)}") from exc


def load_config(path: Path | None) -> Config:
    if path is None:
        return DEFAULT_CONFIG
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read config file at {path}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in config file at {path}") from exc
    return parse_config(data)

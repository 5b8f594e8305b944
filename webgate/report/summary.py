"""
Per-page summary envelopes.

summary.v2.json is the source of truth for a page; summary.json (v1) is a pure
projection of it. Both are built from the same status computation.
"""

from __future__ import annotations

import json
from importlib import resources
from typing import Any

SCHEMA_VERSION = "1.1.0"
SUMMARY_SCHEMA_URI = "https://webgate.dev/schemas/summary.v1.json"

SCHEMA_VERSION_V2 = "2.0.0"
SUMMARY_SCHEMA_URI_V2 = "https://webgate.dev/schemas/summary.v2.json"

STEP_NAMES = ("playwright", "a11y", "perf", "visual")

V1_A11Y_KEYS = ("violations", "countsByImpact", "reportPath")
V1_PERFORMANCE_KEYS = ("metrics", "budgets", "budgetResults", "reportPath")


def compute_statuses(
    a11y: dict[str, Any] | None,
    performance: dict[str, Any] | None,
    visual: dict[str, Any] | None,
    fail_on_a11y: bool = True,
    fail_on_perf: bool = True,
    fail_on_visual: bool = True,
) -> tuple[str, dict[str, str]]:
    """
    Derive the overall status and per-step statuses.

    A category fails only when its result is present, its fail switch is on,
    and its predicate holds. Missing categories are "skipped" and never affect
    the overall status. The browser step is always "pass" once reached.
    """
    a11y_fail = bool(a11y is not None and fail_on_a11y and a11y.get("violations", 0) > 0)
    perf_fail = bool(
        performance is not None
        and fail_on_perf
        and any(not passed for passed in (performance.get("budgetResults") or {}).values())
    )
    visual_fail = bool(visual is not None and fail_on_visual and visual.get("failed"))

    def step(result: dict[str, Any] | None, failed: bool) -> str:
        if result is None:
            return "skipped"
        return "fail" if failed else "pass"

    steps = {
        "playwright": "pass",
        "a11y": step(a11y, a11y_fail),
        "perf": step(performance, perf_fail),
        "visual": step(visual, visual_fail),
    }
    overall = "fail" if (a11y_fail or perf_fail or visual_fail) else "pass"
    return overall, steps


def build_summary_v2(
    *,
    url: str,
    started_at: str,
    duration_ms: int,
    tool_version: str,
    screenshots: list[dict[str, Any]],
    a11y: dict[str, Any] | None,
    performance: dict[str, Any] | None,
    visual: dict[str, Any] | None,
    runtime_signals: dict[str, Any],
    artifacts: dict[str, Any],
    fail_on_a11y: bool = True,
    fail_on_perf: bool = True,
    fail_on_visual: bool = True,
    schema_uri: str = SUMMARY_SCHEMA_URI_V2,
    schema_version: str = SCHEMA_VERSION_V2,
) -> dict[str, Any]:
    overall, steps = compute_statuses(a11y, performance, visual, fail_on_a11y, fail_on_perf, fail_on_visual)
    return {
        "$schema": schema_uri,
        "schemaVersion": schema_version,
        "toolVersion": tool_version,
        "overallStatus": overall,
        "url": url,
        "startedAt": started_at,
        "durationMs": duration_ms,
        "steps": steps,
        "artifacts": artifacts,
        "screenshots": screenshots,
        "a11y": a11y,
        "performance": performance,
        "visual": visual,
        "runtimeSignals": runtime_signals,
    }


def _pick(source: dict[str, Any] | None, keys: tuple[str, ...]) -> dict[str, Any] | None:
    if source is None:
        return None
    return {key: source.get(key) for key in keys}


def to_v1_summary(
    summary_v2: dict[str, Any],
    schema_uri: str = SUMMARY_SCHEMA_URI,
    schema_version: str = SCHEMA_VERSION,
) -> dict[str, Any]:
    artifacts = {key: value for key, value in summary_v2["artifacts"].items() if key != "summaryV2"}
    return {
        "$schema": schema_uri,
        "schemaVersion": schema_version,
        "toolVersion": summary_v2["toolVersion"],
        "overallStatus": summary_v2["overallStatus"],
        "url": summary_v2["url"],
        "startedAt": summary_v2["startedAt"],
        "durationMs": summary_v2["durationMs"],
        "steps": dict(summary_v2["steps"]),
        "artifacts": artifacts,
        "screenshots": summary_v2["screenshots"],
        "a11y": _pick(summary_v2.get("a11y"), V1_A11Y_KEYS),
        "performance": _pick(summary_v2.get("performance"), V1_PERFORMANCE_KEYS),
        "visual": summary_v2.get("visual"),
    }


def load_summary_v2_schema() -> dict[str, Any]:
    """JSON Schema for the run-level summary.v2.json, bundled as package data."""
    text = resources.files("webgate").joinpath("schemas/summary.v2.json").read_text(encoding="utf-8")
    return json.loads(text)

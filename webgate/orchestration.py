"""
Multi-target resolution, cross-page rollups, and trend history.

Trend status is recomputed on every run from the history directory:

    disabled               trending off, no history I/O
    no_previous            history empty or absent
    incompatible_previous  only parseable snapshots of another schema found
    corrupt_previous       at least one unparseable snapshot found, none usable
    ready                  newest compatible snapshot found, deltas computed

History files are named ``<timestamp>.summary.v2.json`` so that sorting by
name is sorting by write time.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from webgate.config import Config, TrendSettings
from webgate.errors import UsageError
from webgate.fsutil import ensure_dir, to_relative, write_json
from webgate.report.summary import STEP_NAMES
from webgate.timing import now_iso
from webgate.urls import validate_url

logger = logging.getLogger(__name__)

SNAPSHOT_SUFFIX = ".summary.v2.json"
TREND_STATUSES = ("disabled", "no_previous", "incompatible_previous", "corrupt_previous", "ready")

NO_PREVIOUS_MESSAGE = "No previous snapshot is available yet."
CORRUPT_PREVIOUS_MESSAGE = "No valid previous snapshot was found because one or more snapshots were corrupt."
INCOMPATIBLE_PREVIOUS_MESSAGE = "No compatible previous snapshot was found in trend history."


@dataclass(frozen=True)
class AuditTarget:
    index: int
    name: str
    url: str
    out_dir: Path
    baseline_dir: Path


@dataclass
class TargetAuditResult:
    target: AuditTarget
    summary: dict[str, Any]
    summary_v2: dict[str, Any]


@dataclass
class LoadedTrendSnapshot:
    snapshot: dict[str, Any] | None
    path: Path | None
    had_corrupt_snapshot: bool
    had_incompatible_snapshot: bool


def to_slug(value: str) -> str:
    normalized = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return normalized or "page"


def target_dir_name(index: int, name: str) -> str:
    return f"{index + 1:02d}-{to_slug(name)}"


def _normalize_target_url(raw: str) -> str:
    url, is_internal = validate_url(raw)
    if is_internal:
        hostname = urlparse(url).hostname
        logger.warning(
            "Auditing internal network address (%s). Ensure this is intentional; "
            "private and loopback targets can expose internal services.",
            hostname,
        )
    return url


def resolve_targets(
    input_url: str | None,
    config: Config,
    out_dir: Path,
    baseline_dir: Path,
) -> list[AuditTarget]:
    configured = [(target.name, target.url) for target in config.urls or []]
    if not configured and not input_url:
        raise UsageError("URL argument is required when config.urls is not configured")

    # A CLI URL is only checked by validate_url, not by the config field limits.
    sources = configured or [("default", str(input_url))]
    is_multi = len(sources) > 1

    targets = []
    for index, (name, raw_url) in enumerate(sources):
        url = _normalize_target_url(raw_url)
        slug = target_dir_name(index, name)
        targets.append(
            AuditTarget(
                index=index,
                name=name,
                url=url,
                out_dir=out_dir / "pages" / slug if is_multi else out_dir,
                baseline_dir=baseline_dir / "pages" / slug if is_multi else baseline_dir,
            )
        )
    return targets


def aggregate_step_status(statuses: list[str]) -> str:
    if any(status == "fail" for status in statuses):
        return "fail"
    if all(status == "skipped" for status in statuses):
        return "skipped"
    return "pass"


def aggregate_steps(results: list[TargetAuditResult]) -> dict[str, str]:
    return {
        step: aggregate_step_status([result.summary["steps"][step] for result in results])
        for step in STEP_NAMES
    }


def count_performance_budget_failures(summary_v2: dict[str, Any]) -> int:
    performance = summary_v2.get("performance")
    if not performance:
        return 0
    return sum(1 for passed in (performance.get("budgetResults") or {}).values() if not passed)


def build_page_entry(result: TargetAuditResult) -> dict[str, Any]:
    summary, summary_v2, target = result.summary, result.summary_v2, result.target
    a11y = summary_v2.get("a11y") or {}
    performance = summary_v2.get("performance") or {}
    visual = summary_v2.get("visual") or {}
    signals = summary_v2.get("runtimeSignals") or {}
    return {
        "index": target.index,
        "name": target.name,
        "url": target.url,
        "overallStatus": summary_v2["overallStatus"],
        "startedAt": summary_v2["startedAt"],
        "durationMs": summary_v2["durationMs"],
        "steps": summary_v2["steps"],
        "artifacts": {
            "summary": summary["artifacts"]["summary"],
            "summaryV2": summary_v2["artifacts"]["summaryV2"],
            "report": summary["artifacts"]["report"],
        },
        "metrics": {
            "a11yViolations": a11y.get("violations", 0),
            "performanceScore": (performance.get("metrics") or {}).get("performanceScore"),
            "maxMismatchRatio": visual.get("maxMismatchRatio"),
            "consoleErrors": (signals.get("console") or {}).get("errorCount", 0),
            "jsErrors": (signals.get("jsErrors") or {}).get("total", 0),
            "failedRequests": (signals.get("network") or {}).get("failedRequests", 0),
        },
        "details": summary_v2,
    }


def build_rollup(pages: list[dict[str, Any]]) -> dict[str, int]:
    return {
        "pageCount": len(pages),
        "failedPages": sum(1 for page in pages if page["overallStatus"] == "fail"),
        "a11yViolations": sum(page["metrics"]["a11yViolations"] for page in pages),
        "performanceBudgetFailures": sum(count_performance_budget_failures(page["details"]) for page in pages),
        "visualFailures": sum(1 for page in pages if (page["details"].get("visual") or {}).get("failed")),
    }


def resolve_history_dir(settings: TrendSettings, out_dir: Path) -> Path:
    history = Path(settings.history_dir)
    return history if history.is_absolute() else (out_dir / history).resolve()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_audit_summary_v2(value: Any) -> bool:
    if not isinstance(value, dict):
        return False
    schema_version = value.get("schemaVersion")
    rollup = value.get("rollup")
    return (
        isinstance(schema_version, str)
        and schema_version.startswith("2.")
        and isinstance(value.get("pages"), list)
        and isinstance(rollup, dict)
        and _is_number(rollup.get("pageCount"))
    )


def list_snapshot_files(history_dir: Path) -> list[Path]:
    if not history_dir.is_dir():
        return []
    return sorted(
        (entry for entry in history_dir.iterdir() if entry.is_file() and entry.name.endswith(SNAPSHOT_SUFFIX)),
        key=lambda entry: entry.name,
    )


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def load_latest_trend_snapshot(history_dir: Path) -> LoadedTrendSnapshot:
    """Scan history newest-first; bad files are noted and skipped, never fatal."""
    had_corrupt = False
    had_incompatible = False
    for path in reversed(list_snapshot_files(history_dir)):
        try:
            parsed = json.loads(path.read_text(encoding="utf-8"), parse_constant=_reject_constant)
        except (OSError, ValueError, RecursionError):
            had_corrupt = True
            logger.warning("Ignoring corrupt trend snapshot: %s", path.name)
            continue
        if is_audit_summary_v2(parsed):
            return LoadedTrendSnapshot(parsed, path, had_corrupt, had_incompatible)
        had_incompatible = True
        logger.warning("Ignoring incompatible trend snapshot: %s", path.name)
    return LoadedTrendSnapshot(None, None, had_corrupt, had_incompatible)


def to_trend_delta(current: float, previous: float | None) -> dict[str, Any]:
    return {
        "current": current,
        "previous": previous,
        "delta": None if previous is None else round(current - previous, 6),
    }


def _number_or_none(value: Any) -> float | None:
    return value if _is_number(value) else None


def disabled_trend() -> dict[str, Any]:
    return {
        "status": "disabled",
        "historyDir": None,
        "previousSnapshotPath": None,
        "message": None,
        "metrics": None,
        "pages": [],
    }


def _page_key(page: dict[str, Any]) -> str:
    return f"{page.get('name')}::{page.get('url')}"


def _page_delta(page: dict[str, Any], previous_page: dict[str, Any] | None) -> dict[str, Any]:
    metrics = page["metrics"]
    previous_metrics = (previous_page or {}).get("metrics")
    if not isinstance(previous_metrics, dict):
        previous_metrics = {}

    def previous(key: str, substitute_missing: bool) -> float | None:
        if previous_page is None:
            return None
        value = _number_or_none(previous_metrics.get(key))
        if value is None and substitute_missing:
            return 0
        return value

    return {
        "name": page["name"],
        "url": page["url"],
        "statusChanged": bool(previous_page is not None and previous_page.get("overallStatus") != page["overallStatus"]),
        "a11yViolations": to_trend_delta(metrics["a11yViolations"], previous("a11yViolations", False)),
        "performanceScore": to_trend_delta(metrics["performanceScore"] or 0, previous("performanceScore", True)),
        "maxMismatchRatio": to_trend_delta(metrics["maxMismatchRatio"] or 0, previous("maxMismatchRatio", True)),
    }


def build_trend_summary(
    current: dict[str, Any],
    previous: LoadedTrendSnapshot,
    out_dir: Path,
    history_dir: Path,
    enabled: bool,
) -> dict[str, Any]:
    if not enabled:
        return disabled_trend()

    history_rel = to_relative(out_dir, history_dir)
    if previous.snapshot is None:
        status, message = "no_previous", NO_PREVIOUS_MESSAGE
        if previous.had_corrupt_snapshot:
            status, message = "corrupt_previous", CORRUPT_PREVIOUS_MESSAGE
        elif previous.had_incompatible_snapshot:
            status, message = "incompatible_previous", INCOMPATIBLE_PREVIOUS_MESSAGE
        return {
            "status": status,
            "historyDir": history_rel,
            "previousSnapshotPath": None,
            "message": message,
            "metrics": None,
            "pages": [],
        }

    snapshot = previous.snapshot
    previous_pages = {_page_key(page): page for page in snapshot["pages"] if isinstance(page, dict)}
    previous_rollup = snapshot["rollup"]
    rollup = current["rollup"]

    def rollup_delta(key: str) -> dict[str, Any]:
        return to_trend_delta(rollup[key], _number_or_none(previous_rollup.get(key)))

    return {
        "status": "ready",
        "historyDir": history_rel,
        "previousSnapshotPath": to_relative(out_dir, previous.path) if previous.path else None,
        "message": None,
        "metrics": {
            "overallStatusChanged": current["overallStatus"] != snapshot.get("overallStatus"),
            "durationMs": to_trend_delta(current["durationMs"], _number_or_none(snapshot.get("durationMs"))),
            "failedPages": rollup_delta("failedPages"),
            "a11yViolations": rollup_delta("a11yViolations"),
            "performanceBudgetFailures": rollup_delta("performanceBudgetFailures"),
            "visualFailures": rollup_delta("visualFailures"),
        },
        "pages": [_page_delta(page, previous_pages.get(_page_key(page))) for page in current["pages"]],
    }


def snapshot_file_name(now: datetime | None = None) -> str:
    return re.sub(r"[:.]", "-", now_iso(now)) + SNAPSHOT_SUFFIX


def prune_trend_snapshots(history_dir: Path, max_snapshots: int) -> list[Path]:
    files = list_snapshot_files(history_dir)
    removed = []
    while len(files) > max_snapshots:
        oldest = files.pop(0)
        oldest.unlink()
        removed.append(oldest)
    return removed


def write_trend_snapshot(
    history_dir: Path,
    summary_v2: dict[str, Any],
    max_snapshots: int,
    now: datetime | None = None,
) -> Path:
    # Two runs finishing within the same millisecond share a filename; the later write wins.
    ensure_dir(history_dir)
    snapshot_path = history_dir / snapshot_file_name(now)
    write_json(snapshot_path, summary_v2)
    removed = prune_trend_snapshots(history_dir, max_snapshots)
    if removed:
        logger.debug("Pruned %d trend snapshot(s) from %s", len(removed), history_dir)
    return snapshot_path

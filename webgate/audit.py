"""
Audit orchestration: runs every resolved target sequentially, then writes the
run-level summaries and trend snapshot.

Per target the fixed step order is: open browser session, accessibility scan,
screenshots, performance audit, visual regression, write envelopes. Any step
raising aborts the whole run; run-level summaries are only written once every
target has completed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from webgate import __version__
from webgate.auth import AuditAuth
from webgate.config import Config, load_config
from webgate.fsutil import ensure_dir, to_relative, validate_output_directory, write_json, write_text
from webgate.orchestration import (
    AuditTarget,
    TargetAuditResult,
    aggregate_steps,
    build_page_entry,
    build_rollup,
    build_trend_summary,
    disabled_trend,
    load_latest_trend_snapshot,
    resolve_history_dir,
    resolve_targets,
    write_trend_snapshot,
)
from webgate.report import html as html_report
from webgate.report.summary import (
    SCHEMA_VERSION,
    SCHEMA_VERSION_V2,
    SUMMARY_SCHEMA_URI,
    SUMMARY_SCHEMA_URI_V2,
    build_summary_v2,
    to_v1_summary,
)
from webgate.runners import accessibility, browser, performance, visual
from webgate.timing import duration_ms, now_iso, start_timer

logger = logging.getLogger(__name__)

COMPATIBILITY_NOTE = "summary.json remains v1-compatible. summary.v2.json contains multipage and trend fields."


@dataclass
class AuditOptions:
    config: Path | None = None
    out: Path = Path("artifacts")
    baseline_dir: Path = Path("baselines")
    set_baseline: bool = False
    fail_on_a11y: bool = True
    fail_on_perf: bool = True
    fail_on_visual: bool = True
    auth: AuditAuth | None = None


@dataclass
class Collaborators:
    """External engines the orchestrator drives; swapped for fakes in tests."""

    open_page: Callable[..., Any] = browser.open_page
    capture_screenshots: Callable[..., list[dict[str, Any]]] = browser.capture_screenshots
    run_accessibility_scan: Callable[..., dict[str, Any]] = accessibility.run_accessibility_scan
    run_performance_audit: Callable[..., dict[str, Any]] = performance.run_performance_audit
    run_visual_diff: Callable[..., dict[str, Any]] = visual.run_visual_diff
    build_html_report: Callable[..., str] = html_report.build_html_report
    load_config: Callable[[Path | None], Config] = load_config


@dataclass
class AuditRunResult:
    exit_code: int
    summary: dict[str, Any]
    summary_v2: dict[str, Any]


def _relative_screenshots(out_dir: Path, screenshots: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [{**shot, "path": to_relative(out_dir, shot["path"])} for shot in screenshots]


def _relative_visual(out_dir: Path, summary: dict[str, Any] | None) -> dict[str, Any] | None:
    if summary is None:
        return None
    return {
        **summary,
        "results": [
            {
                **result,
                "currentPath": to_relative(out_dir, result["currentPath"]),
                "baselinePath": to_relative(out_dir, result["baselinePath"]),
                "diffPath": to_relative(out_dir, result["diffPath"]) if result.get("diffPath") else None,
            }
            for result in summary["results"]
        ],
    }


def _with_relative_report(out_dir: Path, summary: dict[str, Any] | None) -> dict[str, Any] | None:
    if summary is None:
        return None
    return {**summary, "reportPath": to_relative(out_dir, summary["reportPath"])}


def run_target_audit(
    target: AuditTarget,
    out_dir: Path,
    config: Config,
    options: AuditOptions,
    collaborators: Collaborators,
) -> TargetAuditResult:
    screenshots_dir = target.out_dir / "screenshots"
    diffs_dir = target.out_dir / "diffs"
    summary_path = target.out_dir / "summary.json"
    summary_v2_path = target.out_dir / "summary.v2.json"
    report_path = target.out_dir / "report.html"

    ensure_dir(target.out_dir)
    ensure_dir(screenshots_dir)
    ensure_dir(diffs_dir)

    started_at = now_iso()
    started = start_timer()

    a11y: dict[str, Any] | None = None
    perf: dict[str, Any] | None = None
    visual_summary: dict[str, Any] | None = None

    opened = collaborators.open_page(target.url, config, options.auth)
    try:
        if config.toggles.a11y:
            a11y = collaborators.run_accessibility_scan(opened.page, target.out_dir, config)

        screenshots = collaborators.capture_screenshots(opened.page, target.url, config, screenshots_dir)

        if config.toggles.perf:
            perf = collaborators.run_performance_audit(target.url, target.out_dir, config, options.auth)

        if config.toggles.visual:
            visual_summary = collaborators.run_visual_diff(
                screenshots,
                target.baseline_dir,
                diffs_dir,
                options.set_baseline,
                config.visual.threshold,
            )

        relative_a11y = _with_relative_report(out_dir, a11y)
        relative_perf = _with_relative_report(out_dir, perf)
        artifacts = {
            "summary": to_relative(out_dir, summary_path),
            "summaryV2": to_relative(out_dir, summary_v2_path),
            "report": to_relative(out_dir, report_path),
            "axe": relative_a11y["reportPath"] if relative_a11y else None,
            "lighthouse": relative_perf["reportPath"] if relative_perf else None,
            "screenshotsDir": to_relative(out_dir, screenshots_dir),
            "diffsDir": to_relative(out_dir, diffs_dir),
            "baselineDir": to_relative(out_dir, target.baseline_dir),
        }

        summary_v2 = build_summary_v2(
            url=target.url,
            started_at=started_at,
            duration_ms=duration_ms(started),
            tool_version=__version__,
            screenshots=_relative_screenshots(out_dir, screenshots),
            a11y=relative_a11y,
            performance=relative_perf,
            visual=_relative_visual(out_dir, visual_summary),
            runtime_signals=opened.runtime_signals.snapshot(),
            artifacts=artifacts,
            fail_on_a11y=options.fail_on_a11y,
            fail_on_perf=options.fail_on_perf,
            fail_on_visual=options.fail_on_visual,
        )
        summary = to_v1_summary(summary_v2)

        write_json(summary_path, summary)
        write_json(summary_v2_path, summary_v2)
        write_text(report_path, collaborators.build_html_report(summary_v2))
        return TargetAuditResult(target=target, summary=summary, summary_v2=summary_v2)
    finally:
        opened.session.close()


def build_audit_summary_v2(
    *,
    pages: list[dict[str, Any]],
    overall_status: str,
    started_at: str,
    duration: int,
    tool_version: str = __version__,
    schema_uri_v1: str = SUMMARY_SCHEMA_URI,
    schema_uri_v2: str = SUMMARY_SCHEMA_URI_V2,
    schema_version_v1: str = SCHEMA_VERSION,
    schema_version_v2: str = SCHEMA_VERSION_V2,
) -> dict[str, Any]:
    """
    Run-level v2 envelope. Schema pointers default to the bundled constants;
    callers pass explicit values when publishing under a different URI.
    """
    return {
        "$schema": schema_uri_v2,
        "schemaVersion": schema_version_v2,
        "toolVersion": tool_version,
        "mode": "multi" if len(pages) > 1 else "single",
        "overallStatus": overall_status,
        "startedAt": started_at,
        "durationMs": duration,
        "primaryUrl": pages[0]["url"],
        "schemaPointers": {"v1": schema_uri_v1, "v2": schema_uri_v2},
        "schemaVersions": {"v1": schema_version_v1, "v2": schema_version_v2},
        "compatibility": {
            "v1SummaryPath": "summary.json",
            "v1Schema": schema_uri_v1,
            "v1SchemaVersion": schema_version_v1,
            "note": COMPATIBILITY_NOTE,
        },
        "rollup": build_rollup(pages),
        "pages": pages,
        "trend": disabled_trend(),
    }


def run_audit(
    url: str | None,
    options: AuditOptions,
    collaborators: Collaborators | None = None,
) -> AuditRunResult:
    collaborators = collaborators or Collaborators()
    out_dir = options.out.resolve()
    baseline_dir = options.baseline_dir.resolve()

    validate_output_directory(out_dir)
    validate_output_directory(baseline_dir)

    config = collaborators.load_config(options.config.resolve() if options.config else None)
    targets = resolve_targets(url, config, out_dir, baseline_dir)

    trends = config.trends
    history_dir = resolve_history_dir(trends, out_dir)
    if trends.enabled:
        validate_output_directory(history_dir)

    ensure_dir(out_dir)
    started_at = now_iso()
    started = start_timer()

    results: list[TargetAuditResult] = []
    for target in targets:
        logger.debug("Running audit target %d/%d: %s (%s)", target.index + 1, len(targets), target.name, target.url)
        results.append(run_target_audit(target, out_dir, config, options, collaborators))

    overall_status = "fail" if any(result.summary_v2["overallStatus"] == "fail" for result in results) else "pass"
    run_duration = duration_ms(started)
    steps = aggregate_steps(results)

    first = results[0].summary_v2
    run_summary_v2 = {
        **first,
        "overallStatus": overall_status,
        "durationMs": run_duration,
        "steps": steps,
        "artifacts": {**first["artifacts"], "summary": "summary.json", "summaryV2": "summary.v2.json", "report": "report.html"},
    }
    summary = to_v1_summary(run_summary_v2)
    write_json(out_dir / "summary.json", summary)

    pages = [build_page_entry(result) for result in results]
    report_pages = pages if len(pages) > 1 else None
    write_text(out_dir / "report.html", collaborators.build_html_report(run_summary_v2, report_pages))

    summary_v2 = build_audit_summary_v2(
        pages=pages,
        overall_status=overall_status,
        started_at=started_at,
        duration=run_duration,
    )
    if trends.enabled:
        previous = load_latest_trend_snapshot(history_dir)
        summary_v2["trend"] = build_trend_summary(summary_v2, previous, out_dir, history_dir, True)

    write_json(out_dir / "summary.v2.json", summary_v2)

    if trends.enabled:
        write_trend_snapshot(history_dir, summary_v2, trends.max_snapshots)

    return AuditRunResult(exit_code=1 if overall_status == "fail" else 0, summary=summary, summary_v2=summary_v2)

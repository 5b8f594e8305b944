"""Markdown digest of a v1 audit summary."""

from __future__ import annotations

from typing import Any

from webgate.report.summary import STEP_NAMES


def _value(value: Any) -> str:
    if value is None:
        return "n/a"
    if isinstance(value, float):
        return f"{value:.4g}"
    return str(value)


def format_summary_as_markdown(summary: dict[str, Any]) -> str:
    """Render a v1 summary as a short Markdown digest suitable for CI job output."""
    lines = [
        "# Web Quality Audit",
        "",
        f"- URL: `{summary.get('url', '')}`",
        f"- Overall status: **{str(summary.get('overallStatus', 'n/a')).upper()}**",
        f"- Started: {summary.get('startedAt', '')}",
        f"- Duration: {summary.get('durationMs', 0)} ms",
        f"- Tool version: {summary.get('toolVersion', '')}",
        "",
        "## Steps",
        "",
        "| Step | Status |",
        "| --- | --- |",
    ]
    steps = summary.get("steps") or {}
    for step in STEP_NAMES:
        lines.append(f"| {step} | {steps.get(step, 'n/a')} |")

    a11y = summary.get("a11y")
    if a11y:
        counts = a11y.get("countsByImpact") or {}
        lines.extend(
            [
                "",
                "## Accessibility",
                "",
                f"- Violations: {a11y.get('violations', 0)}",
                "- By impact: "
                + ", ".join(f"{level} {counts.get(level, 0)}" for level in ("critical", "serious", "moderate", "minor")),
            ]
        )

    performance = summary.get("performance")
    if performance:
        metrics = performance.get("metrics") or {}
        results = performance.get("budgetResults") or {}
        lines.extend(
            [
                "",
                "## Performance",
                "",
                "| Metric | Value | Within budget |",
                "| --- | --- | --- |",
                f"| Score | {_value(metrics.get('performanceScore'))} | {results.get('performance')} |",
                f"| LCP (ms) | {_value(metrics.get('lcpMs'))} | {results.get('lcp')} |",
                f"| CLS | {_value(metrics.get('cls'))} | {results.get('cls')} |",
                f"| TBT (ms) | {_value(metrics.get('tbtMs'))} | {results.get('tbt')} |",
            ]
        )

    visual = summary.get("visual")
    if visual:
        lines.extend(["", "## Visual Regression", "", "| Screenshot | Status | Mismatch |", "| --- | --- | --- |"])
        for result in visual.get("results") or []:
            lines.append(f"| {result.get('name')} | {result.get('status')} | {_value(result.get('mismatchRatio'))} |")
        lines.append("")
        lines.append(f"Max mismatch ratio {_value(visual.get('maxMismatchRatio'))} (threshold {_value(visual.get('threshold'))})")

    artifacts = summary.get("artifacts") or {}
    if artifacts.get("report"):
        lines.extend(["", f"Report: `{artifacts['report']}`"])
    return "\n".join(lines) + "\n"

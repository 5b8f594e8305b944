"""Self-contained HTML audit report."""

from __future__ import annotations

from html import escape
from typing import Any

STEP_LABELS = {
    "playwright": "Browser",
    "a11y": "Accessibility",
    "perf": "Performance",
    "visual": "Visual Regression",
}

STATUS_COLORS = {
    "pass": "#16a34a",
    "fail": "#dc2626",
    "skipped": "#6b7280",
}

STYLE = """
body { font-family: -apple-system, "Segoe UI", Roboto, sans-serif; margin: 0; background: #f8fafc; color: #0f172a; }
main { max-width: 1100px; margin: 0 auto; padding: 32px 24px 64px; }
h1 { font-size: 28px; margin: 0 0 6px; }
h2 { font-size: 19px; margin: 32px 0 12px; border-bottom: 1px solid #e2e8f0; padding-bottom: 6px; }
.meta { color: #475569; font-size: 14px; }
.badge { display: inline-block; padding: 2px 10px; border-radius: 999px; color: #fff; font-size: 12px; font-weight: 600; text-transform: uppercase; }
table { width: 100%; border-collapse: collapse; background: #fff; font-size: 14px; }
th, td { text-align: left; padding: 8px 10px; border-bottom: 1px solid #e2e8f0; vertical-align: top; }
th { background: #f1f5f9; font-weight: 600; }
.cards { display: grid; grid-template-columns: repeat(auto-fit, minmax(180px, 1fr)); gap: 12px; }
.card { background: #fff; border: 1px solid #e2e8f0; border-radius: 8px; padding: 12px 14px; }
.card .value { font-size: 22px; font-weight: 700; }
.card .label { color: #64748b; font-size: 12px; text-transform: uppercase; letter-spacing: .04em; }
.shots { display: grid; grid-template-columns: repeat(auto-fit, minmax(260px, 1fr)); gap: 14px; }
.shots figure { margin: 0; background: #fff; border: 1px solid #e2e8f0; border-radius: 8px; padding: 8px; }
.shots img { width: 100%; height: auto; border-radius: 4px; }
code { background: #f1f5f9; padding: 1px 4px; border-radius: 4px; }
"""


def _badge(status: str | None) -> str:
    label = status or "n/a"
    color = STATUS_COLORS.get(label, "#6b7280")
    return f'<span class="badge" style="background:{color}">{escape(label)}</span>'


def _fmt(value: Any, digits: int = 2) -> str:
    if value is None:
        return "n/a"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, float):
        return f"{value:.{digits}f}"
    return escape(str(value))


def _card(label: str, value: Any) -> str:
    return f'<div class="card"><div class="value">{_fmt(value)}</div><div class="label">{escape(label)}</div></div>'


def _steps_table(steps: dict[str, str]) -> str:
    rows = "".join(
        f"<tr><td>{escape(label)}</td><td>{_badge(steps.get(key))}</td></tr>" for key, label in STEP_LABELS.items()
    )
    return f"<table><thead><tr><th>Step</th><th>Status</th></tr></thead><tbody>{rows}</tbody></table>"


def _pages_section(pages: list[dict[str, Any]]) -> str:
    rows = []
    for page in pages:
        metrics = page.get("metrics") or {}
        report = page.get("artifacts", {}).get("report", "")
        rows.append(
            "<tr>"
            f"<td>{page.get('index', 0) + 1}</td>"
            f"<td><a href=\"{escape(report)}\">{escape(str(page.get('name', '')))}</a></td>"
            f"<td><code>{escape(str(page.get('url', '')))}</code></td>"
            f"<td>{_badge(page.get('overallStatus'))}</td>"
            f"<td>{_fmt(metrics.get('a11yViolations'))}</td>"
            f"<td>{_fmt(metrics.get('performanceScore'))}</td>"
            f"<td>{_fmt(metrics.get('maxMismatchRatio'), 4)}</td>"
            f"<td>{_fmt(metrics.get('consoleErrors'))}</td>"
            "</tr>"
        )
    return (
        "<h2>Pages</h2><table><thead><tr><th>#</th><th>Name</th><th>URL</th><th>Status</th>"
        "<th>A11y violations</th><th>Perf score</th><th>Max mismatch</th><th>Console errors</th></tr></thead>"
        f"<tbody>{''.join(rows)}</tbody></table>"
    )


def _a11y_section(a11y: dict[str, Any] | None) -> str:
    if not a11y:
        return ""
    counts = a11y.get("countsByImpact") or {}
    cards = "".join(_card(level, counts.get(level, 0)) for level in ("critical", "serious", "moderate", "minor"))
    rows = []
    for detail in a11y.get("details") or []:
        targets = ", ".join(node["target"][0] for node in detail.get("nodes", []) if node.get("target"))
        rows.append(
            "<tr>"
            f"<td><a href=\"{escape(detail.get('helpUrl', ''))}\">{escape(detail.get('id', ''))}</a></td>"
            f"<td>{escape(str(detail.get('impact') or 'n/a'))}</td>"
            f"<td>{escape(detail.get('help', ''))}</td>"
            f"<td>{len(detail.get('nodes', []))}</td>"
            f"<td><code>{escape(targets[:300])}</code></td>"
            "</tr>"
        )
    table = ""
    if rows:
        table = (
            "<table><thead><tr><th>Rule</th><th>Impact</th><th>Help</th><th>Nodes</th><th>Targets</th></tr></thead>"
            f"<tbody>{''.join(rows)}</tbody></table>"
        )
    return (
        f"<h2>Accessibility</h2><p class=\"meta\">Total violations: {_fmt(a11y.get('violations'))}"
        f" &middot; report <code>{escape(str(a11y.get('reportPath', '')))}</code></p>"
        f"<div class=\"cards\">{cards}</div>{table}"
    )


def _performance_section(performance: dict[str, Any] | None) -> str:
    if not performance:
        return ""
    metrics = performance.get("metrics") or {}
    budgets = performance.get("budgets") or {}
    results = performance.get("budgetResults") or {}
    rows = [
        ("Score", metrics.get("performanceScore"), f">= {budgets.get('performance')}", results.get("performance")),
        ("LCP (ms)", metrics.get("lcpMs"), f"<= {budgets.get('lcpMs')}", results.get("lcp")),
        ("CLS", metrics.get("cls"), f"<= {budgets.get('cls')}", results.get("cls")),
        ("TBT (ms)", metrics.get("tbtMs"), f"<= {budgets.get('tbtMs')}", results.get("tbt")),
    ]
    body = "".join(
        f"<tr><td>{escape(name)}</td><td>{_fmt(value)}</td><td>{escape(budget)}</td>"
        f"<td>{_badge('pass' if passed else 'fail')}</td></tr>"
        for name, value, budget, passed in rows
    )
    return (
        "<h2>Performance</h2><table><thead><tr><th>Metric</th><th>Value</th><th>Budget</th><th>Result</th></tr></thead>"
        f"<tbody>{body}</tbody></table>"
    )


def _visual_section(visual: dict[str, Any] | None) -> str:
    if not visual:
        return ""
    figures = []
    for result in visual.get("results") or []:
        image = result.get("diffPath") or result.get("currentPath") or ""
        ratio = result.get("mismatchRatio")
        figures.append(
            f"<figure><img src=\"{escape(image)}\" alt=\"{escape(result.get('name', ''))}\">"
            f"<figcaption>{escape(result.get('name', ''))} &middot; {escape(result.get('status', ''))}"
            f" &middot; mismatch {_fmt(ratio, 4)}</figcaption></figure>"
        )
    return (
        f"<h2>Visual Regression</h2><p class=\"meta\">Max mismatch ratio {_fmt(visual.get('maxMismatchRatio'), 4)}"
        f" &middot; threshold {_fmt(visual.get('threshold'), 4)} &middot; failed {_fmt(bool(visual.get('failed')))}</p>"
        f"<div class=\"shots\">{''.join(figures)}</div>"
    )


def _runtime_section(signals: dict[str, Any] | None) -> str:
    if not signals:
        return ""
    console = signals.get("console") or {}
    js_errors = signals.get("jsErrors") or {}
    network = signals.get("network") or {}
    cards = "".join(
        [
            _card("Console errors", console.get("errorCount", 0)),
            _card("Console warnings", console.get("warningCount", 0)),
            _card("JS errors", js_errors.get("total", 0)),
            _card("Requests", network.get("totalRequests", 0)),
            _card("Failed requests", network.get("failedRequests", 0)),
            _card("Transfer (KB)", round(network.get("transferSizeBytes", 0) / 1024, 1)),
        ]
    )
    errors = "".join(f"<li><code>{escape(item.get('message', ''))}</code></li>" for item in js_errors.get("errors", [])[:20])
    error_list = f"<ul>{errors}</ul>" if errors else ""
    return f"<h2>Runtime Signals</h2><div class=\"cards\">{cards}</div>{error_list}"


def build_html_report(summary: dict[str, Any], pages: list[dict[str, Any]] | None = None) -> str:
    """Render a self-contained HTML report for a page summary, optionally with a multi-page overview."""
    title = f"Web Quality Report - {summary.get('url', '')}"
    pages_html = _pages_section(pages) if pages else ""
    return (
        "<!doctype html>\n"
        "<html lang=\"en\"><head><meta charset=\"utf-8\">"
        "<meta name=\"viewport\" content=\"width=device-width, initial-scale=1\">"
        f"<title>{escape(title)}</title><style>{STYLE}</style></head><body><main>"
        f"<h1>Web Quality Report {_badge(summary.get('overallStatus'))}</h1>"
        f"<p class=\"meta\"><code>{escape(str(summary.get('url', '')))}</code> &middot; started {escape(str(summary.get('startedAt', '')))}"
        f" &middot; {_fmt(summary.get('durationMs'))} ms &middot; webgate {escape(str(summary.get('toolVersion', '')))}</p>"
        f"{pages_html}"
        f"<h2>Steps</h2>{_steps_table(summary.get('steps') or {})}"
        f"{_a11y_section(summary.get('a11y'))}"
        f"{_performance_section(summary.get('performance'))}"
        f"{_visual_section(summary.get('visual'))}"
        f"{_runtime_section(summary.get('runtimeSignals'))}"
        "</main></body></html>\n"
    )

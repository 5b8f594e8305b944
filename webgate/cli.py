"""Command-line entry point for `webgate audit`."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from webgate import __version__
from webgate.audit import AuditOptions, AuditRunResult, run_audit
from webgate.auth import parse_audit_auth
from webgate.errors import UsageError
from webgate.report.markdown import format_summary_as_markdown

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webgate",
        description="Accessibility, performance and visual regression gate for one or more pages.",
    )
    parser.add_argument("--version", action="version", version=f"webgate {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    audit = subparsers.add_parser("audit", help="Audit a URL or every page listed in config.urls")
    audit.add_argument("url", nargs="?", help="Target URL (optional when config.urls is set)")
    audit.add_argument("--config", type=Path, help="Path to a JSON config file")
    audit.add_argument("--out", type=Path, default=Path("artifacts"), help="Output directory")
    audit.add_argument("--baseline-dir", type=Path, default=Path("baselines"), help="Baseline screenshot directory")
    audit.add_argument("--set-baseline", action="store_true", help="Replace baselines with the current screenshots")
    audit.add_argument("--no-fail-on-a11y", action="store_true", help="Report accessibility violations without failing")
    audit.add_argument("--no-fail-on-perf", action="store_true", help="Report budget misses without failing")
    audit.add_argument("--no-fail-on-visual", action="store_true", help="Report visual diffs without failing")
    audit.add_argument(
        "--format",
        choices=["html", "json", "md"],
        default="html",
        help="Console output: html prints artifact paths, json prints summary.json, md prints a Markdown digest",
    )
    audit.add_argument(
        "--header",
        action="append",
        default=[],
        metavar="NAME: VALUE",
        help="Extra request header for authenticated pages (repeatable)",
    )
    audit.add_argument(
        "--cookie",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Cookie for authenticated pages (repeatable)",
    )
    audit.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def _print_result(result: AuditRunResult, out_dir: Path, output_format: str) -> None:
    if output_format == "json":
        print(json.dumps(result.summary, indent=2))
        return
    if output_format == "md":
        print(format_summary_as_markdown(result.summary), end="")
        return

    rollup = result.summary_v2["rollup"]
    trend = result.summary_v2["trend"]
    print(f"Status: {result.summary_v2['overallStatus'].upper()}")
    print(f"Pages: {rollup['pageCount']} audited, {rollup['failedPages']} failed")
    print(f"A11y violations: {rollup['a11yViolations']}")
    print(f"Performance budget failures: {rollup['performanceBudgetFailures']}")
    print(f"Visual failures: {rollup['visualFailures']}")
    if trend["status"] != "disabled":
        print(f"Trend: {trend['status']}")
    print(f"Report: {out_dir / 'report.html'}")
    print(f"Summary: {out_dir / 'summary.json'}")
    print(f"Summary v2: {out_dir / 'summary.v2.json'}")


def run_audit_command(args: argparse.Namespace) -> int:
    auth = parse_audit_auth(args.header, args.cookie)
    options = AuditOptions(
        config=args.config,
        out=args.out,
        baseline_dir=args.baseline_dir,
        set_baseline=args.set_baseline,
        fail_on_a11y=not args.no_fail_on_a11y,
        fail_on_perf=not args.no_fail_on_perf,
        fail_on_visual=not args.no_fail_on_visual,
        auth=auth,
    )
    if args.format == "html":
        print(f"Audit target: {args.url or 'config.urls'}")
        print("Running audit...")
    result = run_audit(args.url, options)
    _print_result(result, args.out, args.format)
    return result.exit_code


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        return run_audit_command(args)
    except UsageError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return exc.exit_code
    except Exception as exc:
        logger.debug("Audit aborted", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

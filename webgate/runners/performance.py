"""
Performance audit: Lighthouse run locally via its CLI, or remotely via the
PageSpeed Insights API. Both produce the same Lighthouse result (LHR) shape.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any

import requests

from webgate.auth import AuditAuth
from webgate.config import Budgets, Config
from webgate.fsutil import write_json
from webgate.retry import retry

logger = logging.getLogger(__name__)

PAGESPEED_ENDPOINT = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"


class PerformanceAuditError(RuntimeError):
    pass


def to_fixed_score(score: Any) -> float:
    if not isinstance(score, (int, float)) or isinstance(score, bool):
        return 0.0
    return round(float(score), 2)


def evaluate_budgets(metrics: dict[str, float], budgets: Budgets) -> dict[str, bool]:
    return {
        "performance": metrics["performanceScore"] >= budgets.performance,
        "lcp": metrics["lcpMs"] <= budgets.lcp_ms,
        "cls": metrics["cls"] <= budgets.cls,
        "tbt": metrics["tbtMs"] <= budgets.tbt_ms,
    }


def _numeric_audit(audits: dict[str, Any], key: str) -> float:
    value = (audits.get(key) or {}).get("numericValue")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return 0.0


def extract_metrics(lhr: dict[str, Any]) -> dict[str, float]:
    categories = lhr.get("categories") or {}
    audits = lhr.get("audits") or {}
    return {
        "performanceScore": to_fixed_score((categories.get("performance") or {}).get("score")),
        "lcpMs": _numeric_audit(audits, "largest-contentful-paint"),
        "cls": _numeric_audit(audits, "cumulative-layout-shift"),
        "tbtMs": _numeric_audit(audits, "total-blocking-time"),
    }


def _chrome_flags() -> str:
    flags = ["--headless", "--disable-gpu"]
    if os.getenv("CI") == "true" or os.getenv("GITHUB_ACTIONS") == "true":
        flags.extend(["--no-sandbox", "--disable-setuid-sandbox"])
    return " ".join(flags)


def run_lighthouse_cli(url: str, config: Config, auth: AuditAuth | None, binary: str = "lighthouse") -> dict[str, Any]:
    form_factor = config.lighthouse.form_factor
    with tempfile.TemporaryDirectory(prefix="webgate-lh-") as tmp:
        output_path = Path(tmp) / "lhr.json"
        cmd = [
            binary,
            url,
            "--output=json",
            f"--output-path={output_path}",
            "--only-categories=performance",
            "--quiet",
            f"--form-factor={form_factor}",
            f"--chrome-flags={_chrome_flags()}",
        ]
        if form_factor == "desktop":
            cmd.append("--preset=desktop")
        if auth is not None:
            headers = dict(auth.headers)
            cookie = auth.cookie_header()
            if cookie:
                headers["Cookie"] = cookie
            if headers:
                cmd.append(f"--extra-headers={json.dumps(headers)}")
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=max(180, config.timeouts.navigation_ms // 1000 * 6),
        )
        if proc.returncode != 0:
            tail = "\n".join(line for line in (proc.stderr or "").splitlines()[-10:] if line.strip())
            raise PerformanceAuditError(f"Lighthouse exited with code {proc.returncode}: {tail}")
        try:
            return json.loads(output_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise PerformanceAuditError(f"Lighthouse did not return a result: {exc}") from exc


def fetch_pagespeed_lhr(url: str, config: Config, timeout: int = 60) -> dict[str, Any]:
    params: dict[str, Any] = {
        "url": url,
        "strategy": config.lighthouse.form_factor,
        "category": ["performance"],
        "locale": "en_US",
    }
    api_key = config.lighthouse.pagespeed_api_key or os.getenv("PAGESPEED_API_KEY", "")
    if api_key:
        params["key"] = api_key
    resp = requests.get(PAGESPEED_ENDPOINT, params=params, timeout=timeout)
    if resp.status_code != 200:
        reason = f"HTTP {resp.status_code}"
        try:
            err = resp.json().get("error", {})
            if isinstance(err, dict) and err.get("message"):
                reason = f"{reason}: {err['message']}"
        except ValueError:
            pass
        raise PerformanceAuditError(f"PageSpeed request failed ({reason})")
    lhr = resp.json().get("lighthouseResult")
    if not isinstance(lhr, dict):
        raise PerformanceAuditError("PageSpeed did not return a lighthouseResult")
    return lhr


def resolve_source(config: Config) -> str:
    source = config.lighthouse.source
    if source == "auto":
        return "lighthouse" if shutil.which("lighthouse") else "pagespeed"
    return source


def run_performance_audit(url: str, out_dir: Path, config: Config, auth: AuditAuth | None = None) -> dict[str, Any]:
    source = resolve_source(config)
    logger.debug("Running performance audit via %s", source)
    if source == "pagespeed" and auth is not None:
        logger.warning("PageSpeed Insights cannot send auth headers or cookies; auditing %s anonymously", url)

    settings = config.retry

    def attempt() -> dict[str, Any]:
        if source == "lighthouse":
            return run_lighthouse_cli(url, config, auth)
        return fetch_pagespeed_lhr(url, config)

    lhr = retry(
        attempt,
        max_retries=settings.max_retries,
        base_delay_ms=settings.base_delay_ms,
        max_delay_ms=settings.max_delay_ms,
        strategy=settings.strategy,
    )

    metrics = extract_metrics(lhr)
    budgets = config.lighthouse.budgets
    report_path = out_dir / "lighthouse.json"
    write_json(report_path, lhr)
    return {
        "metrics": metrics,
        "budgets": {
            "performance": budgets.performance,
            "lcpMs": budgets.lcp_ms,
            "cls": budgets.cls,
            "tbtMs": budgets.tbt_ms,
        },
        "budgetResults": evaluate_budgets(metrics, budgets),
        "reportPath": str(report_path),
        "source": source,
    }

from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from webgate.auth import AuditAuth
from webgate.config import Budgets, parse_config
from webgate.runners import performance
from webgate.runners.performance import (
    PerformanceAuditError,
    evaluate_budgets,
    extract_metrics,
    fetch_pagespeed_lhr,
    run_performance_audit,
    to_fixed_score,
)

LHR = {
    "categories": {"performance": {"score": 0.8749}},
    "audits": {
        "largest-contentful-paint": {"numericValue": 2100.5},
        "cumulative-layout-shift": {"numericValue": 0.02},
        "total-blocking-time": {"numericValue": 310},
    },
}


class FakeResponse:
    def __init__(self, status_code: int, payload: dict) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> dict:
        return self._payload


def test_to_fixed_score():
    assert to_fixed_score(0.8749) == 0.87
    assert to_fixed_score(None) == 0.0
    assert to_fixed_score(True) == 0.0


def test_extract_metrics():
    assert extract_metrics(LHR) == {"performanceScore": 0.87, "lcpMs": 2100.5, "cls": 0.02, "tbtMs": 310.0}
    assert extract_metrics({}) == {"performanceScore": 0.0, "lcpMs": 0.0, "cls": 0.0, "tbtMs": 0.0}


def test_evaluate_budgets_boundaries():
    budgets = Budgets(performance=0.87, lcp_ms=2100.5, cls=0.01, tbt_ms=400)
    results = evaluate_budgets(extract_metrics(LHR), budgets)
    assert results == {"performance": True, "lcp": True, "cls": False, "tbt": True}


def test_pagespeed_request(monkeypatch):
    captured = {}

    def fake_get(url, params, timeout):
        captured.update(url=url, params=params, timeout=timeout)
        return FakeResponse(200, {"lighthouseResult": LHR})

    monkeypatch.setattr(performance.requests, "get", fake_get)
    monkeypatch.delenv("PAGESPEED_API_KEY", raising=False)
    config = parse_config({"lighthouse": {"formFactor": "mobile", "pagespeedApiKey": "k"}})

    assert fetch_pagespeed_lhr("https://example.com/", config) == LHR
    assert captured["url"] == performance.PAGESPEED_ENDPOINT
    assert captured["params"]["strategy"] == "mobile"
    assert captured["params"]["key"] == "k"


def test_pagespeed_error_message(monkeypatch):
    monkeypatch.setattr(
        performance.requests,
        "get",
        lambda url, params, timeout: FakeResponse(429, {"error": {"message": "Quota exceeded"}}),
    )
    with pytest.raises(PerformanceAuditError, match="HTTP 429: Quota exceeded"):
        fetch_pagespeed_lhr("https://example.com/", parse_config({}))


def test_run_performance_audit_writes_report(tmp_path, monkeypatch):
    monkeypatch.setattr(performance, "fetch_pagespeed_lhr", lambda url, config: LHR)
    config = parse_config({"lighthouse": {"source": "pagespeed"}, "retry": {"maxRetries": 0}})

    summary = run_performance_audit("https://example.com/", tmp_path, config)

    assert summary["source"] == "pagespeed"
    assert summary["metrics"]["performanceScore"] == 0.87
    assert summary["budgets"] == {"performance": 0.8, "lcpMs": 2500, "cls": 0.1, "tbtMs": 200}
    assert summary["budgetResults"] == {"performance": True, "lcp": True, "cls": True, "tbt": False}
    assert json.loads((tmp_path / "lighthouse.json").read_text(encoding="utf-8")) == LHR
    assert summary["reportPath"] == str(tmp_path / "lighthouse.json")


def test_lighthouse_cli_receives_auth_headers(tmp_path, monkeypatch):
    seen = {}

    def fake_run(cmd, capture_output, text, timeout):
        seen["cmd"] = cmd
        output = next(part.split("=", 1)[1] for part in cmd if part.startswith("--output-path="))
        with open(output, "w", encoding="utf-8") as handle:
            json.dump(LHR, handle)
        return SimpleNamespace(returncode=0, stderr="")

    monkeypatch.setattr(performance.subprocess, "run", fake_run)
    config = parse_config({"lighthouse": {"source": "lighthouse"}})
    auth = AuditAuth(headers={"Authorization": "Bearer t"}, cookies=[("sid", "1")])

    summary = run_performance_audit("https://example.com/", tmp_path, config, auth)

    extra = next(part for part in seen["cmd"] if part.startswith("--extra-headers="))
    assert json.loads(extra.split("=", 1)[1]) == {"Authorization": "Bearer t", "Cookie": "sid=1"}
    assert "--preset=desktop" in seen["cmd"]
    assert summary["source"] == "lighthouse"


def test_auto_source_prefers_local_lighthouse(monkeypatch):
    config = parse_config({})
    monkeypatch.setattr(performance.shutil, "which", lambda name: "/usr/bin/lighthouse")
    assert performance.resolve_source(config) == "lighthouse"
    monkeypatch.setattr(performance.shutil, "which", lambda name: None)
    assert performance.resolve_source(config) == "pagespeed"

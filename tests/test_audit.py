from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest

from webgate.audit import AuditOptions, run_audit
from webgate.errors import ConfigError, UsageError
from webgate.orchestration import list_snapshot_files
from webgate.report.summary import SCHEMA_VERSION, SUMMARY_SCHEMA_URI, load_summary_v2_schema

MULTI_CONFIG = {
    "urls": [
        {"name": "Landing", "url": "https://example.com"},
        {"name": "Checkout/Flow", "url": "https://example.com/checkout"},
    ],
    "toggles": {"a11y": True, "perf": False, "visual": False},
}


def _read(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


def test_single_target_writes_run_level_artifacts(workdir, engines):
    result = run_audit("https://example.com", AuditOptions(), engines.collaborators())

    out = workdir / "artifacts"
    assert result.exit_code == 0
    assert (out / "summary.json").is_file()
    assert (out / "summary.v2.json").is_file()
    assert (out / "report.html").is_file()
    assert not (out / "pages").exists()

    summary = _read(out / "summary.json")
    assert summary["$schema"] == SUMMARY_SCHEMA_URI
    assert summary["schemaVersion"] == SCHEMA_VERSION
    assert summary["url"] == "https://example.com/"
    assert "runtimeSignals" not in summary

    summary_v2 = _read(out / "summary.v2.json")
    assert summary_v2["mode"] == "single"
    assert summary_v2["primaryUrl"] == "https://example.com/"
    assert summary_v2["pages"][0]["name"] == "default"
    assert summary_v2["trend"]["status"] == "disabled"
    assert engines.sessions[0].closed == 1


def test_multi_target_layout_and_rollup(workdir, engines, write_config):
    engines.a11y_violations = {"https://example.com/checkout": 2}
    config_path = write_config(MULTI_CONFIG)

    result = run_audit(None, AuditOptions(config=config_path), engines.collaborators())

    out = workdir / "artifacts"
    assert result.exit_code == 1
    assert (out / "pages" / "01-landing" / "summary.json").is_file()
    assert (out / "pages" / "02-checkout-flow" / "summary.v2.json").is_file()

    summary_v2 = result.summary_v2
    assert summary_v2["mode"] == "multi"
    assert summary_v2["rollup"] == {
        "pageCount": 2,
        "failedPages": 1,
        "a11yViolations": 2,
        "performanceBudgetFailures": 0,
        "visualFailures": 0,
    }
    assert [page["overallStatus"] for page in summary_v2["pages"]] == ["pass", "fail"]
    assert summary_v2["pages"][1]["artifacts"]["summary"] == "pages/02-checkout-flow/summary.json"
    assert result.summary["steps"] == {"playwright": "pass", "a11y": "fail", "perf": "skipped", "visual": "skipped"}
    assert "Checkout/Flow" in (out / "report.html").read_text(encoding="utf-8")


def test_no_fail_switch_keeps_run_passing(workdir, engines, write_config):
    engines.a11y_violations = {"https://example.com/checkout": 2}
    config_path = write_config(MULTI_CONFIG)

    result = run_audit(None, AuditOptions(config=config_path, fail_on_a11y=False), engines.collaborators())

    assert result.exit_code == 0
    assert result.summary_v2["rollup"]["failedPages"] == 0
    assert result.summary_v2["rollup"]["a11yViolations"] == 2


def test_failing_target_aborts_run_and_closes_session(workdir, engines, write_config):
    engines.a11y_errors = {"https://example.com/checkout": RuntimeError("axe crashed")}
    config_path = write_config(MULTI_CONFIG)

    with pytest.raises(RuntimeError, match="axe crashed"):
        run_audit(None, AuditOptions(config=config_path), engines.collaborators())

    out = workdir / "artifacts"
    assert [session.closed for session in engines.sessions] == [1, 1]
    assert (out / "pages" / "01-landing" / "summary.json").is_file()
    assert not (out / "summary.json").exists()
    assert not (out / "summary.v2.json").exists()


def test_missing_url_without_config_urls_is_usage_error(workdir, engines):
    with pytest.raises(UsageError, match="URL argument is required"):
        run_audit(None, AuditOptions(), engines.collaborators())
    assert engines.opened == []


def test_malformed_url_is_usage_error(workdir, engines):
    with pytest.raises(UsageError, match="Invalid URL"):
        run_audit("http://[::1", AuditOptions(), engines.collaborators())
    assert engines.opened == []


def test_long_cli_url_is_not_bound_by_config_limits(workdir, engines):
    url = "https://example.com/" + "a" * 2100
    result = run_audit(url, AuditOptions(), engines.collaborators())
    assert result.exit_code == 0
    assert result.summary["url"] == url


def test_output_directory_outside_working_directory(workdir, engines, tmp_path_factory):
    outside = tmp_path_factory.mktemp("elsewhere")
    with pytest.raises(UsageError, match="within the working directory"):
        run_audit("https://example.com", AuditOptions(out=outside), engines.collaborators())


def test_invalid_config_is_config_error(workdir, engines, write_config):
    config_path = write_config({"urls": []})
    with pytest.raises(ConfigError) as excinfo:
        run_audit(None, AuditOptions(config=config_path), engines.collaborators())
    assert excinfo.value.exit_code == 2


def test_trend_lifecycle(workdir, engines, write_config):
    config = {**MULTI_CONFIG, "trends": {"enabled": True, "maxSnapshots": 5}}
    config_path = write_config(config)
    options = AuditOptions(config=config_path)

    first = run_audit(None, options, engines.collaborators())
    assert first.summary_v2["trend"]["status"] == "no_previous"
    assert first.summary_v2["trend"]["historyDir"] == ".webgate-history"

    history_dir = workdir / "artifacts" / ".webgate-history"
    assert len(list_snapshot_files(history_dir)) == 1

    engines.a11y_violations = {"https://example.com/checkout": 3}
    second = run_audit(None, options, engines.collaborators())
    trend = second.summary_v2["trend"]
    assert trend["status"] == "ready"
    assert trend["previousSnapshotPath"].startswith(".webgate-history/")
    assert trend["metrics"]["overallStatusChanged"] is True
    assert trend["metrics"]["failedPages"] == {"current": 1, "previous": 0, "delta": 1}
    assert trend["metrics"]["a11yViolations"]["delta"] == 3
    checkout = trend["pages"][1]
    assert checkout["name"] == "Checkout/Flow"
    assert checkout["statusChanged"] is True


def test_history_directory_must_stay_inside_working_directory(workdir, engines, write_config, tmp_path_factory):
    outside = tmp_path_factory.mktemp("history")
    config_path = write_config({"trends": {"enabled": True, "historyDir": str(outside)}})
    with pytest.raises(UsageError):
        run_audit("https://example.com", AuditOptions(config=config_path), engines.collaborators())
    assert engines.opened == []


def test_summary_v2_matches_bundled_schema(workdir, engines, write_config):
    engines.a11y_violations = {"https://example.com/checkout": 1}
    config = {**MULTI_CONFIG, "toggles": {"a11y": True, "perf": True, "visual": True}, "trends": {"enabled": True}}
    config_path = write_config(config)

    run_audit(None, AuditOptions(config=config_path), engines.collaborators())
    second = run_audit(None, AuditOptions(config=config_path), engines.collaborators())

    schema = load_summary_v2_schema()
    jsonschema.validate(second.summary_v2, schema)
    jsonschema.validate(_read(workdir / "artifacts" / "summary.v2.json"), schema)

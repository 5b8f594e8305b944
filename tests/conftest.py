from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from webgate.audit import Collaborators
from webgate.runners.browser import RuntimeSignalRecorder


class FakeSession:
    def __init__(self) -> None:
        self.closed = 0

    def close(self) -> None:
        self.closed += 1


class FakeEngines:
    """Stands in for the browser, axe, Lighthouse and visual engines."""

    def __init__(self) -> None:
        self.a11y_violations: dict[str, int] = {}
        self.a11y_errors: dict[str, Exception] = {}
        self.performance_score = 0.95
        self.visual_failed = False
        self.sessions: list[FakeSession] = []
        self.opened: list[str] = []

    def open_page(self, url: str, config: Any, auth: Any = None) -> SimpleNamespace:
        session = FakeSession()
        self.sessions.append(session)
        self.opened.append(url)
        recorder = RuntimeSignalRecorder()
        recorder.on_request(SimpleNamespace(resource_type="document"))
        return SimpleNamespace(page=SimpleNamespace(url=url), session=session, runtime_signals=recorder)

    def capture_screenshots(self, page: Any, base_url: str, config: Any, out_dir: Path) -> list[dict[str, Any]]:
        path = out_dir / "home.png"
        path.write_bytes(b"png")
        return [{"name": "home", "path": str(path), "url": base_url, "fullPage": True}]

    def run_accessibility_scan(self, page: Any, out_dir: Path, config: Any = None) -> dict[str, Any]:
        if page.url in self.a11y_errors:
            raise self.a11y_errors[page.url]
        count = self.a11y_violations.get(page.url, 0)
        report_path = out_dir / "axe.json"
        report_path.write_text("{}", encoding="utf-8")
        return {
            "violations": count,
            "countsByImpact": {"critical": count, "serious": 0, "moderate": 0, "minor": 0},
            "reportPath": str(report_path),
            "details": [],
            "metadata": {"totalViolations": count, "keptViolations": 0, "droppedViolations": 0, "droppedNodes": 0},
        }

    def run_performance_audit(self, url: str, out_dir: Path, config: Any, auth: Any = None) -> dict[str, Any]:
        report_path = out_dir / "lighthouse.json"
        report_path.write_text("{}", encoding="utf-8")
        score = self.performance_score
        return {
            "metrics": {"performanceScore": score, "lcpMs": 1200.0, "cls": 0.01, "tbtMs": 50.0},
            "budgets": {"performance": 0.8, "lcpMs": 2500, "cls": 0.1, "tbtMs": 200},
            "budgetResults": {"performance": score >= 0.8, "lcp": True, "cls": True, "tbt": True},
            "reportPath": str(report_path),
            "source": "pagespeed",
        }

    def run_visual_diff(
        self,
        screenshots: list[dict[str, Any]],
        baseline_dir: Path,
        diff_dir: Path,
        set_baseline: bool,
        threshold: float,
    ) -> dict[str, Any]:
        ratio = 0.5 if self.visual_failed else 0.0
        results = [
            {
                "name": shot["name"],
                "currentPath": shot["path"],
                "baselinePath": str(baseline_dir / Path(shot["path"]).name),
                "diffPath": str(diff_dir / Path(shot["path"]).name),
                "mismatchRatio": ratio,
                "status": "diffed",
            }
            for shot in screenshots
        ]
        return {"results": results, "threshold": threshold, "failed": self.visual_failed, "maxMismatchRatio": ratio}

    def collaborators(self) -> Collaborators:
        return Collaborators(
            open_page=self.open_page,
            capture_screenshots=self.capture_screenshots,
            run_accessibility_scan=self.run_accessibility_scan,
            run_performance_audit=self.run_performance_audit,
            run_visual_diff=self.run_visual_diff,
        )


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    for name in ("WEBGATE_AUTH_HEADER", "WEBGATE_AUTH_HEADERS", "WEBGATE_AUTH_COOKIE", "WEBGATE_AUTH_COOKIES"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


@pytest.fixture
def engines() -> FakeEngines:
    return FakeEngines()


@pytest.fixture
def write_config(workdir: Path):
    def _write(data: dict[str, Any], name: str = "webgate.json") -> Path:
        path = workdir / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write

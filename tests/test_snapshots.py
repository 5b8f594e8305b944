from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

from webgate.orchestration import (
    list_snapshot_files,
    prune_trend_snapshots,
    snapshot_file_name,
    write_trend_snapshot,
)
from webgate.timing import now_iso

BASE_TIME = datetime(2026, 3, 14, 9, 26, 53, 589_000, tzinfo=UTC)


def test_now_iso_has_millisecond_precision():
    assert now_iso(BASE_TIME) == "2026-03-14T09:26:53.589Z"


def test_snapshot_file_name_is_filesystem_safe():
    assert snapshot_file_name(BASE_TIME) == "2026-03-14T09-26-53-589Z.summary.v2.json"


def test_write_snapshot_persists_summary(tmp_path):
    history = tmp_path / "history"
    summary = {"schemaVersion": "2.0.0", "pages": [], "rollup": {"pageCount": 0}}
    path = write_trend_snapshot(history, summary, max_snapshots=5, now=BASE_TIME)
    assert path.parent == history
    assert json.loads(path.read_text(encoding="utf-8")) == summary


def test_retention_keeps_newest_snapshots(tmp_path):
    history = tmp_path / "history"
    written = [
        write_trend_snapshot(history, {"run": index}, max_snapshots=3, now=BASE_TIME + timedelta(seconds=index))
        for index in range(5)
    ]
    remaining = list_snapshot_files(history)
    assert remaining == written[-3:]
    assert json.loads(remaining[-1].read_text(encoding="utf-8")) == {"run": 4}


def test_prune_ignores_unrelated_files(tmp_path):
    history = tmp_path / "history"
    history.mkdir()
    (history / "README.txt").write_text("keep me", encoding="utf-8")
    for index in range(4):
        name = snapshot_file_name(BASE_TIME + timedelta(minutes=index))
        (history / name).write_text("{}", encoding="utf-8")

    removed = prune_trend_snapshots(history, 1)

    assert len(removed) == 3
    assert len(list_snapshot_files(history)) == 1
    assert (history / "README.txt").exists()


def test_list_snapshot_files_missing_directory(tmp_path):
    assert list_snapshot_files(tmp_path / "absent") == []

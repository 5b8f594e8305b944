"""Filesystem helpers for artifact directories and JSON output."""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Any

from webgate.errors import UsageError


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def write_json(path: Path, data: Any) -> None:
    ensure_dir(path.parent)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def write_text(path: Path, content: str) -> None:
    ensure_dir(path.parent)
    path.write_text(content, encoding="utf-8")


def copy_file(source: Path, destination: Path) -> None:
    ensure_dir(destination.parent)
    shutil.copyfile(source, destination)


def to_relative(root: Path, path: Path | str) -> str:
    """Path of ``path`` relative to ``root`` with forward slashes, as stored in summaries."""
    rel = os.path.relpath(Path(path), root)
    return rel.replace(os.sep, "/")


def validate_output_directory(path: Path, root: Path | None = None) -> None:
    """Output, baseline and history directories must live under the working directory."""
    base = (root or Path.cwd()).resolve()
    resolved = path.resolve()
    if resolved != base and base not in resolved.parents:
        raise UsageError(f"Output directory must be within the working directory: {path}")

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def write_files(root: Path, files: Mapping[str, str]) -> None:
    """Create ``files`` (slash paths mapped to contents) beneath ``root``."""
    for relative, content in files.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content.encode("utf-8"))


def snapshot_dir(root: Path) -> dict[str, str]:
    """Return every file under ``root`` keyed by its slash-relative path."""
    snapshot: dict[str, str] = {}
    for path in sorted(root.rglob("*")):
        if path.is_file():
            snapshot[path.relative_to(root).as_posix()] = path.read_bytes().decode("utf-8")
    return snapshot


@dataclass(slots=True)
class Sandbox:
    """Fixture payload representing a scratch sandbox directory."""

    root: Path

    def write(self, files: Mapping[str, str]) -> None:
        write_files(self.root, files)

    def snapshot(self) -> dict[str, str]:
        return snapshot_dir(self.root)


@pytest.fixture()
def sandbox(tmp_path: Path) -> Sandbox:
    """Create an empty sandbox root nested inside ``tmp_path``."""
    root = tmp_path / "sandbox"
    root.mkdir()
    return Sandbox(root=root)

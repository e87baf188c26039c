"""Typed records produced by the patch parser and returned by the engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

ChangeOp = Literal[" ", "-", "+"]


class HunkKind(str, Enum):
    """Top-level instruction carried by a file hunk."""

    ADD = "add"
    DELETE = "delete"
    UPDATE = "update"


class FileChangeKind(str, Enum):
    """Effect an applied hunk had on a single path."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"

    @property
    def code(self) -> str:
        """Single-letter status code in the style of ``git status --short``."""
        return _CHANGE_CODES[self]


_CHANGE_CODES = {
    FileChangeKind.ADDED: "A",
    FileChangeKind.MODIFIED: "M",
    FileChangeKind.DELETED: "D",
}


@dataclass(slots=True)
class ChangeLine:
    """One prefixed line inside a change set.

    ``op`` is the control column (`` ``, ``-`` or ``+``) and ``text`` is the
    remainder of the line, untrimmed.
    """

    op: ChangeOp
    text: str


@dataclass(slots=True)
class ChangeSet:
    """Contiguous edit region introduced by zero or more ``@@`` anchors."""

    anchors: list[str] = field(default_factory=list)
    lines: list[ChangeLine] = field(default_factory=list)

    def expected_context(self) -> list[str]:
        """Return the context and delete lines that must exist in the file."""
        return [line.text for line in self.lines if line.op in (" ", "-")]


@dataclass(slots=True)
class FileHunk:
    """Add, Delete or Update instruction for a single file."""

    kind: HunkKind
    path: str
    move_to: str | None = None
    add_lines: list[str] = field(default_factory=list)
    change_sets: list[ChangeSet] = field(default_factory=list)
    line_number: int = 0


@dataclass(slots=True)
class PatchDocument:
    """Parsed patch: the ordered file hunks and nothing else."""

    hunks: list[FileHunk] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class FileChange:
    """Sandbox-relative path touched by an applied hunk."""

    path: str
    kind: FileChangeKind

    def render(self) -> str:
        return f"{self.kind.code} {self.path}"


__all__ = [
    "ChangeLine",
    "ChangeOp",
    "ChangeSet",
    "FileChange",
    "FileChangeKind",
    "FileHunk",
    "HunkKind",
    "PatchDocument",
]

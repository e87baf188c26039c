"""Read target files into line arrays and write edited lines back."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


@dataclass(slots=True)
class TextSnapshot:
    """Line view of a file plus the newline style needed to rebuild it."""

    lines: list[str]
    newline: str = "\n"
    had_final_newline: bool = True


def parse_text(content: str) -> TextSnapshot:
    """Split ``content`` into lines, remembering CRLF and the final newline."""
    newline = "\n"
    if "\r\n" in content:
        newline = "\r\n"
        content = content.replace("\r\n", "\n")
    had_final = content.endswith("\n")
    lines = content.split("\n")
    if had_final:
        lines.pop()
    return TextSnapshot(lines=lines, newline=newline, had_final_newline=had_final)


def read_text_snapshot(path: Path | str) -> TextSnapshot:
    """Read ``path`` from disk; a missing file raises ``FileNotFoundError``."""
    data = Path(path).read_bytes()
    return parse_text(data.decode(_ENCODING, errors=_ERRORS))


def render_lines(lines: list[str], newline: str = "\n") -> str:
    """Join ``lines`` with ``newline``; non-empty output always ends with one."""
    if not lines:
        return ""
    return newline.join(lines) + newline


def write_lines(path: Path | str, lines: list[str], newline: str = "\n") -> None:
    """Write ``lines`` to ``path``, creating parent directories as needed."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(render_lines(lines, newline).encode(_ENCODING, errors=_ERRORS))


__all__ = ["TextSnapshot", "parse_text", "read_text_snapshot", "render_lines", "write_lines"]

"""Recursive-descent parser for the ``*** Begin Patch`` format."""

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import invalid_patch_error
from .models import ChangeLine, ChangeSet, FileHunk, HunkKind, PatchDocument

APPLY_PATCH_GRAMMAR = """start: begin_patch hunk+ end_patch
begin_patch: "*** Begin Patch" LF
end_patch: "*** End Patch" LF?

hunk: add_hunk | delete_hunk | update_hunk
add_hunk: "*** Add File: " filename LF add_line+
delete_hunk: "*** Delete File: " filename LF
update_hunk: "*** Update File: " filename LF change_move? change?

filename: /(.+)/
add_line: "+" /(.+)/ LF -> line

change_move: "*** Move to: " filename LF
change: (change_context | change_line)+ eof_line?
change_context: ("@@" | "@@ " /(.+)/) LF
change_line: ("+" | "-" | " ") /(.+)/ LF
eof_line: "*** End of File" LF
%import common.LF"""

BEGIN_PATCH = "*** Begin Patch"
END_PATCH = "*** End Patch"
END_OF_FILE = "*** End of File"
ADD_FILE = "*** Add File: "
DELETE_FILE = "*** Delete File: "
UPDATE_FILE = "*** Update File: "
MOVE_TO = "*** Move to: "

_HEADER_PREFIXES = (ADD_FILE, DELETE_FILE, UPDATE_FILE)


@dataclass(slots=True)
class LineCursor:
    """LF-split view of the patch text with a read position."""

    lines: list[str]
    index: int = 0

    @classmethod
    def from_text(cls, text: str) -> "LineCursor":
        return cls(lines=text.replace("\r\n", "\n").split("\n"))

    def at_end(self) -> bool:
        return self.index >= len(self.lines)

    def peek(self) -> str | None:
        if self.at_end():
            return None
        return self.lines[self.index]

    def advance(self) -> str | None:
        line = self.peek()
        if line is not None:
            self.index += 1
        return line

    @property
    def line_number(self) -> int:
        """1-based number of the line ``peek`` would return."""
        return self.index + 1


def _strip_header(line: str, prefix: str) -> str | None:
    """Return the operand after ``prefix`` or None when the line is another shape."""
    if line == prefix.rstrip():
        return ""
    if line.startswith(prefix):
        return line[len(prefix):].strip()
    return None


def is_file_boundary(line: str) -> bool:
    """Return True for lines that end the body of the current file hunk."""
    trimmed = line.strip()
    if trimmed == END_PATCH:
        return True
    return any(_strip_header(trimmed, prefix) is not None for prefix in _HEADER_PREFIXES)


def parse_anchor(line: str) -> str:
    """Strip ``@@`` and at most one following space from an anchor line."""
    rest = line[2:]
    if rest.startswith(" "):
        rest = rest[1:]
    return rest


def parse_patch(text: str) -> PatchDocument:
    """Parse ``text`` into a :class:`PatchDocument` without touching disk."""
    cursor = LineCursor.from_text(text)
    first = cursor.advance()
    if first is None or first.strip() != BEGIN_PATCH:
        raise invalid_patch_error(f'patch must start with "{BEGIN_PATCH}"')

    document = PatchDocument()
    while True:
        line = cursor.peek()
        if line is None:
            raise invalid_patch_error(f'unexpected end of input; expected hunk or "{END_PATCH}"')
        if line.strip() == END_PATCH:
            cursor.advance()
            break
        document.hunks.append(_parse_file_hunk(cursor))

    while not cursor.at_end():
        if cursor.lines[cursor.index].strip():
            raise invalid_patch_error(
                f"unexpected trailing content at line {cursor.line_number}",
                line=cursor.line_number,
            )
        cursor.index += 1
    return document


def _parse_file_hunk(cursor: LineCursor) -> FileHunk:
    start = cursor.line_number
    raw_header = cursor.advance()
    if raw_header is None:
        raise invalid_patch_error("unexpected end of input while reading hunk header")
    header = raw_header.strip()

    path = _strip_header(header, ADD_FILE)
    if path is not None:
        if not path:
            raise invalid_patch_error(f"empty path for Add at line {start}", line=start)
        return FileHunk(
            kind=HunkKind.ADD,
            path=path,
            add_lines=_parse_add_lines(cursor, path),
            line_number=start,
        )

    path = _strip_header(header, DELETE_FILE)
    if path is not None:
        if not path:
            raise invalid_patch_error(f"empty path for Delete at line {start}", line=start)
        return FileHunk(kind=HunkKind.DELETE, path=path, line_number=start)

    path = _strip_header(header, UPDATE_FILE)
    if path is not None:
        if not path:
            raise invalid_patch_error(f"empty path for Update at line {start}", line=start)
        hunk = FileHunk(kind=HunkKind.UPDATE, path=path, line_number=start)
        following = cursor.peek()
        if following is not None:
            move_to = _strip_header(following.strip(), MOVE_TO)
            if move_to is not None:
                if not move_to:
                    raise invalid_patch_error(
                        f"empty destination in Move to at line {cursor.line_number}",
                        line=cursor.line_number,
                    )
                cursor.advance()
                hunk.move_to = move_to
        hunk.change_sets = _parse_change_sets(cursor, path)
        return hunk

    raise invalid_patch_error(f"expected hunk header at line {start}; got {raw_header!r}", line=start)


def _parse_add_lines(cursor: LineCursor, path: str) -> list[str]:
    lines: list[str] = []
    while True:
        line = cursor.peek()
        if line is None:
            raise invalid_patch_error(f"unterminated Add for {path}", path=path)
        if is_file_boundary(line):
            return lines
        if not line.startswith("+"):
            raise invalid_patch_error(
                f"add for {path}: expected '+' line at {cursor.line_number}, got: {line!r}",
                path=path,
                line=cursor.line_number,
            )
        lines.append(line[1:])
        cursor.advance()


@dataclass(slots=True)
class _ChangeSetBuilder:
    """Accumulates change sets for one Update hunk."""

    path: str
    sets: list[ChangeSet] = field(default_factory=list)
    current: ChangeSet | None = None

    def open(self) -> ChangeSet:
        if self.current is None:
            self.current = ChangeSet()
        return self.current

    def flush(self) -> None:
        if self.current is None:
            return
        if not self.current.lines:
            raise invalid_patch_error(
                f"update for {self.path}: anchor provided without any changes",
                path=self.path,
            )
        self.sets.append(self.current)
        self.current = None


def _parse_change_sets(cursor: LineCursor, path: str) -> list[ChangeSet]:
    builder = _ChangeSetBuilder(path=path)
    while True:
        line = cursor.peek()
        if line is None:
            raise invalid_patch_error(f"unterminated Update for {path}", path=path)
        if is_file_boundary(line):
            break
        if line.strip() == END_OF_FILE:
            cursor.advance()
            continue
        if line.startswith("@@"):
            cursor.advance()
            anchor = parse_anchor(line)
            if builder.current is not None and builder.current.lines:
                builder.flush()
            change_set = builder.open()
            if anchor:
                change_set.anchors.append(anchor)
            continue
        if line and line[0] in ("+", "-", " "):
            builder.open().lines.append(ChangeLine(op=line[0], text=line[1:]))
            cursor.advance()
            continue
        raise invalid_patch_error(
            f"malformed update for {path} at line {cursor.line_number}: {line!r}",
            path=path,
            line=cursor.line_number,
        )
    builder.flush()
    return builder.sets


__all__ = [
    "APPLY_PATCH_GRAMMAR",
    "LineCursor",
    "is_file_boundary",
    "parse_anchor",
    "parse_patch",
]

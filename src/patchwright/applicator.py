"""Apply the change sets of one Update hunk to a file's lines."""

from __future__ import annotations

from typing import Sequence

from .errors import PatchError, invalid_patch_error, wrap_error
from .matching import IndentMap, apply_indent_mapping, find_context, lines_match, locate_anchors
from .models import ChangeSet


def apply_change_sets(original: Sequence[str], change_sets: Sequence[ChangeSet]) -> list[str]:
    """Return ``original`` with every change set applied in order.

    Change sets must appear in file order: each one is searched for only after
    the region consumed by its predecessor. One indentation map is shared by
    all change sets so a tabs/spaces remap established early must hold for the
    rest of the file.
    """
    output: list[str] = []
    position = 0
    indent_map: IndentMap = {}

    for number, change_set in enumerate(change_sets, start=1):
        try:
            search_from = position
            if change_set.anchors:
                search_from = locate_anchors(original, change_set.anchors, position)

            pattern = change_set.expected_context()
            if pattern:
                start = find_context(original, pattern, search_from, indent_map)
            elif change_set.anchors:
                start = search_from
            else:
                # Neither anchors nor context: pure insertion appends at end of file.
                start = len(original)
        except PatchError as error:
            raise wrap_error(f"change set {number}", error) from error

        output.extend(original[position:start])
        position = _walk_change_set(original, change_set, start, indent_map, output, number)

    output.extend(original[position:])
    return output


def _walk_change_set(
    original: Sequence[str],
    change_set: ChangeSet,
    start: int,
    indent_map: IndentMap,
    output: list[str],
    number: int,
) -> int:
    cursor = start
    for line_number, line in enumerate(change_set.lines, start=1):
        if line.op == "+":
            output.append(apply_indent_mapping(line.text, indent_map))
            continue
        actual = original[cursor] if cursor < len(original) else None
        if actual is None or not lines_match(line.text, actual, indent_map):
            label = "context" if line.op == " " else "delete"
            raise invalid_patch_error(
                f"change set {number}, line {line_number}: {label} mismatch: "
                f"want {line.text!r}, got {actual or ''!r}",
                expected=line.text,
                actual=actual,
            )
        if line.op == " ":
            output.append(actual)
        cursor += 1
    return cursor


__all__ = ["apply_change_sets"]

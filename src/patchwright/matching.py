"""Anchor lookup and indentation-tolerant context matching."""

from __future__ import annotations

import logging
from typing import MutableMapping, Sequence

from .errors import invalid_patch_error

LOGGER = logging.getLogger(__name__)

IndentMap = MutableMapping[str, str]

_ANCHOR_ASCII_REPLACEMENTS = {
    "—": "-",  # em dash
    "–": "-",  # en dash
    "―": "-",  # horizontal bar
    "“": '"',
    "”": '"',
    "‘": "'",
    "’": "'",
    "•": "*",  # bullet
    "·": "*",  # middle dot
    "…": "...",
    "×": "x",
}
_ANCHOR_TRANSLATION = str.maketrans(_ANCHOR_ASCII_REPLACEMENTS)


def fold_punctuation(text: str) -> str:
    """Replace typographic punctuation with ASCII look-alikes."""
    return text.translate(_ANCHOR_TRANSLATION)


def anchor_variants(anchor: str) -> list[str]:
    """Return the progressively looser search strings tried for ``anchor``."""
    variants: list[str] = []
    trimmed_trailing = anchor.rstrip(" \t")
    trimmed_both = trimmed_trailing.lstrip(" \t")
    for candidate in (anchor, trimmed_trailing, trimmed_both, fold_punctuation(trimmed_both)):
        if not variants or variants[-1] != candidate:
            variants.append(candidate)
    return variants


def find_anchor(lines: Sequence[str], anchor: str, start: int) -> int | None:
    """Return the first line at or after ``start`` containing ``anchor``."""
    for candidate in anchor_variants(anchor):
        if not candidate:
            return start
        for index in range(start, len(lines)):
            if candidate in lines[index]:
                return index
    return None


def locate_anchors(lines: Sequence[str], anchors: Sequence[str], start: int) -> int:
    """Resolve chained anchors, each narrowing the search window further."""
    position = start
    for number, anchor in enumerate(anchors, start=1):
        if not anchor:
            continue
        found = find_anchor(lines, anchor, position)
        if found is None:
            raise invalid_patch_error(
                f"anchor {number} ({anchor!r}) not found starting at line {position + 1}",
                anchor=anchor,
            )
        position = found
    return position


def split_indent(text: str) -> tuple[str, str]:
    """Split ``text`` into its leading space/tab run and the remainder."""
    index = 0
    while index < len(text) and text[index] in " \t":
        index += 1
    return text[:index], text[index:]


def lines_match(patch_line: str, actual_line: str, indent_map: IndentMap) -> bool:
    """Compare a patch line to a file line, recording indentation remaps.

    Lines match when they are equal, or when they differ only in leading
    whitespace and the patch-side indentation maps consistently onto the
    file-side indentation across the whole hunk.
    """
    if patch_line == actual_line:
        return True
    patch_indent, patch_rest = split_indent(patch_line)
    actual_indent, actual_rest = split_indent(actual_line)
    if patch_rest != actual_rest:
        return False
    existing = indent_map.get(patch_indent)
    if existing is not None:
        return existing == actual_indent
    if patch_indent:
        indent_map[patch_indent] = actual_indent
    return True


def apply_indent_mapping(line: str, indent_map: IndentMap) -> str:
    """Rewrite the leading whitespace of an inserted line in the file's style."""
    indent, rest = split_indent(line)
    if not indent:
        return line
    mapped = indent_map.get(indent)
    if mapped is None:
        return line
    return mapped + rest


def _exact_match(lines: Sequence[str], pattern: Sequence[str], start: int) -> int | None:
    size = len(pattern)
    for index in range(start, len(lines) - size + 1):
        if list(lines[index:index + size]) == list(pattern):
            return index
    return None


def _tolerant_match(
    lines: Sequence[str],
    pattern: Sequence[str],
    start: int,
    indent_map: IndentMap,
) -> int | None:
    size = len(pattern)
    for index in range(start, len(lines) - size + 1):
        trial = dict(indent_map)
        if all(lines_match(expected, lines[index + offset], trial) for offset, expected in enumerate(pattern)):
            indent_map.update(trial)
            return index
    return None


def find_context(
    lines: Sequence[str],
    pattern: Sequence[str],
    start: int,
    indent_map: IndentMap,
) -> int:
    """Return the index where ``pattern`` begins at or after ``start``.

    Exact matches anywhere in the window win over indentation-tolerant ones.
    The tolerant pass works on a scratch copy of ``indent_map`` and only
    commits it for the chosen location.
    """
    if not pattern:
        return start
    found = _exact_match(lines, pattern, start)
    if found is not None:
        return found
    found = _tolerant_match(lines, pattern, start, indent_map)
    if found is not None:
        LOGGER.debug("Context matched at line %d after indentation remapping", found + 1)
        return found
    raise invalid_patch_error(
        f"context not found near line {start + 1} (first context: {pattern[0]!r})",
        line=start + 1,
    )


__all__ = [
    "IndentMap",
    "anchor_variants",
    "apply_indent_mapping",
    "find_anchor",
    "find_context",
    "fold_punctuation",
    "lines_match",
    "locate_anchors",
    "split_indent",
]

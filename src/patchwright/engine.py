"""Apply ``*** Begin Patch`` documents to a sandboxed directory tree.

The engine parses the whole patch, validates every path against the sandbox
root and then applies hunks one at a time in document order. Hunk application
is not transactional: when hunk *k* fails, hunks ``1..k-1`` stay on disk.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from .applicator import apply_change_sets
from .errors import PatchError, invalid_patch_error, operational_error, wrap_error
from .models import FileChange, FileChangeKind, FileHunk, HunkKind, PatchDocument
from .parser import parse_patch
from .paths import resolve_patch_path, to_native
from .snapshot import read_text_snapshot, write_lines

TELEMETRY_LOGGER = logging.getLogger("patchwright.telemetry")
LOGGER = logging.getLogger(__name__)


def _serialise_event_value(value: Any) -> Any:
    """Convert telemetry payload values into JSON-friendly representations."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, FileChange):
        return {"path": value.path, "kind": value.kind.value}
    if isinstance(value, (list, tuple, set)):
        return [_serialise_event_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): _serialise_event_value(child) for key, child in value.items()}
    return str(value)


def _emit_patch_event(event: str, **fields: Any) -> None:
    """Log one structured telemetry event as compact JSON."""
    payload = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    for key, value in fields.items():
        payload[key] = _serialise_event_value(value)
    TELEMETRY_LOGGER.info(json.dumps(payload, separators=(",", ":"), ensure_ascii=True))


def validate_paths(root: str, document: PatchDocument) -> None:
    """Rewrite every hunk path to its sandbox-relative form, in place.

    All hunks are checked before anything is written so that a single unsafe
    path aborts the patch with no filesystem change.
    """
    for number, hunk in enumerate(document.hunks, start=1):
        original = hunk.path
        try:
            hunk.path = resolve_patch_path(root, original)
        except PatchError as error:
            raise wrap_error(f"hunk {number} path {original!r}", error, hunk=number, path=original) from error
        if hunk.move_to is not None:
            original_move = hunk.move_to
            try:
                hunk.move_to = resolve_patch_path(root, original_move)
            except PatchError as error:
                raise wrap_error(f"hunk {number} move {original_move!r}", error, hunk=number, path=original_move) from error


def _apply_add(root: str, hunk: FileHunk) -> list[FileChange]:
    # Existing files are overwritten.
    write_lines(to_native(root, hunk.path), hunk.add_lines)
    return [FileChange(hunk.path, FileChangeKind.ADDED)]


def _apply_delete(root: str, hunk: FileHunk) -> list[FileChange]:
    Path(to_native(root, hunk.path)).unlink(missing_ok=True)
    return [FileChange(hunk.path, FileChangeKind.DELETED)]


def _apply_update(root: str, hunk: FileHunk) -> list[FileChange]:
    source = Path(to_native(root, hunk.path))
    destination = Path(to_native(root, hunk.move_to)) if hunk.move_to is not None else source

    try:
        snapshot = read_text_snapshot(source)
    except FileNotFoundError as error:
        raise invalid_patch_error(f"read {hunk.path}: file does not exist") from error
    except OSError as error:
        raise operational_error(f"read {hunk.path}: {error}") from error

    updated = apply_change_sets(snapshot.lines, hunk.change_sets)
    write_lines(destination, updated, snapshot.newline)

    if hunk.move_to is not None:
        if destination != source:
            source.unlink(missing_ok=True)
        return [
            FileChange(hunk.path, FileChangeKind.DELETED),
            FileChange(hunk.move_to, FileChangeKind.ADDED),
        ]
    return [FileChange(hunk.path, FileChangeKind.MODIFIED)]


_APPLIERS = {
    HunkKind.ADD: _apply_add,
    HunkKind.DELETE: _apply_delete,
    HunkKind.UPDATE: _apply_update,
}


def apply_document(root: str, document: PatchDocument, *, telemetry: bool = True) -> list[FileChange]:
    """Apply an already validated document; paths must be sandbox-relative."""
    changes: list[FileChange] = []
    for number, hunk in enumerate(document.hunks, start=1):
        applier = _APPLIERS[hunk.kind]
        try:
            hunk_changes = applier(root, hunk)
        except (PatchError, OSError) as error:
            wrapped = wrap_error(
                f"{hunk.kind.value} hunk {number} at line {hunk.line_number} ({hunk.path})",
                error,
                hunk=number,
            )
            if telemetry:
                _emit_patch_event(
                    "patch_apply_failed",
                    hunk=number,
                    path=hunk.path,
                    kind=wrapped.kind.value,
                    message=str(wrapped),
                    applied=changes,
                )
            raise wrapped from error
        if telemetry:
            _emit_patch_event(
                "patch_hunk_applied",
                hunk=number,
                kind=hunk.kind.value,
                path=hunk.path,
                move_to=hunk.move_to,
            )
        changes.extend(hunk_changes)
    return changes


def apply_patch(sandbox_root: Path | str, patch: str, *, telemetry: bool = True) -> list[FileChange]:
    """Parse ``patch`` and apply it beneath the absolute ``sandbox_root``.

    Returns the file changes in hunk order. Any failure raises
    :class:`PatchError`; use :func:`patchwright.errors.is_invalid_patch` to
    tell a bad patch apart from a broken sandbox. Hunks applied before a
    failure are not rolled back.
    """
    root_text = os.fspath(sandbox_root)
    if not os.path.isabs(root_text):
        raise operational_error(f"sandbox root must be absolute: {root_text!r}")
    root = os.path.normpath(root_text)

    try:
        document = parse_patch(patch)
    except PatchError as error:
        if telemetry:
            _emit_patch_event("patch_parse_failed", message=str(error))
        raise

    try:
        validate_paths(root, document)
    except PatchError as error:
        if telemetry:
            _emit_patch_event(
                "patch_paths_rejected",
                hunk=error.details.get("hunk"),
                path=error.details.get("path"),
                message=str(error),
            )
        raise

    LOGGER.debug("Applying %d hunk(s) under %s", len(document.hunks), root)
    changes = apply_document(root, document, telemetry=telemetry)
    if telemetry:
        _emit_patch_event("patch_apply_succeeded", changes=changes)
    return changes


__all__ = ["TELEMETRY_LOGGER", "apply_document", "apply_patch", "validate_paths"]

"""Confine patch paths to the sandbox root."""

from __future__ import annotations

import os

from .errors import invalid_patch_error


def resolve_patch_path(root: str, raw: str) -> str:
    """Map ``raw`` to a forward-slash path relative to the absolute ``root``.

    Relative paths are interpreted against ``root``. Paths that resolve to the
    root itself or escape it raise an invalid-patch :class:`PatchError`. No
    symlinks are followed; resolution is purely lexical.
    """
    if "\x00" in raw:
        raise invalid_patch_error(f"path {raw!r} contains a NUL byte")
    native = raw.replace("/", os.sep)
    if os.path.isabs(native):
        absolute = os.path.normpath(native)
    else:
        absolute = os.path.normpath(os.path.join(root, native))

    try:
        relative = os.path.relpath(absolute, root)
    except ValueError as error:
        raise invalid_patch_error(f"path {raw!r} escapes working directory {root}") from error

    if relative == ".":
        raise invalid_patch_error(f"path {raw!r} resolves to working directory root")
    if relative == ".." or relative.startswith(".." + os.sep):
        raise invalid_patch_error(f"path {raw!r} escapes working directory {root}")
    return relative.replace(os.sep, "/")


def to_native(root: str, relative: str) -> str:
    """Join a sandbox-relative slash path back onto ``root``."""
    return os.path.join(root, relative.replace("/", os.sep))


__all__ = ["resolve_patch_path", "to_native"]

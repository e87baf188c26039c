"""Anchor-guided apply_patch engine for sandboxed coding agents."""

from .engine import apply_patch
from .errors import PatchError, PatchErrorKind, is_invalid_patch
from .models import ChangeLine, ChangeSet, FileChange, FileChangeKind, FileHunk, HunkKind, PatchDocument
from .parser import APPLY_PATCH_GRAMMAR, parse_patch

__all__ = [
    "APPLY_PATCH_GRAMMAR",
    "ChangeLine",
    "ChangeSet",
    "FileChange",
    "FileChangeKind",
    "FileHunk",
    "HunkKind",
    "PatchDocument",
    "PatchError",
    "PatchErrorKind",
    "apply_patch",
    "is_invalid_patch",
    "parse_patch",
]

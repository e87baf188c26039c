"""Error types shared by the patch parser, matcher and applier."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping


class PatchErrorKind(str, Enum):
    """Classification used by callers to decide how to react to a failure."""

    INVALID_PATCH = "invalid_patch"
    OPERATIONAL = "operational"


class PatchError(RuntimeError):
    """Raised when a patch cannot be parsed, validated or applied.

    ``kind`` separates problems with the patch text itself (malformed grammar,
    unsafe paths, context that does not match) from operational failures such
    as permission errors or a non-absolute sandbox root. Context is layered on
    by raising a new ``PatchError`` from the original one, which keeps the
    underlying description in the message and the cause chain.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: PatchErrorKind = PatchErrorKind.INVALID_PATCH,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.details: dict[str, Any] = dict(details or {})


def invalid_patch_error(message: str, **details: Any) -> PatchError:
    """Build an error that tells the caller to fix the patch and retry."""
    return PatchError(message, kind=PatchErrorKind.INVALID_PATCH, details=details)


def operational_error(message: str, **details: Any) -> PatchError:
    """Build an error describing a broken sandbox or filesystem."""
    return PatchError(message, kind=PatchErrorKind.OPERATIONAL, details=details)


def wrap_error(prefix: str, error: BaseException, **details: Any) -> PatchError:
    """Prefix ``error`` with location context while preserving its kind.

    ``OSError`` instances are classified as operational; everything that is
    already a :class:`PatchError` keeps its own classification.
    """
    if isinstance(error, PatchError):
        kind = error.kind
        merged = {**error.details, **details}
    else:
        kind = PatchErrorKind.OPERATIONAL
        merged = dict(details)
    wrapped = PatchError(f"{prefix}: {error}", kind=kind, details=merged)
    wrapped.__cause__ = error
    return wrapped


def is_invalid_patch(error: BaseException | None) -> bool:
    """Return True when ``error`` reports a problem with the patch itself.

    Operational failures (permissions, disk I/O, bad sandbox root) and
    exceptions that did not originate from the patch engine return False.
    """
    seen: set[int] = set()
    current = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, PatchError):
            return current.kind is PatchErrorKind.INVALID_PATCH
        current = current.__cause__
    return False


__all__ = [
    "PatchError",
    "PatchErrorKind",
    "invalid_patch_error",
    "is_invalid_patch",
    "operational_error",
    "wrap_error",
]

"""LLM-facing ``apply_patch`` tool built on the patch engine."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import PatchConfig
from ..engine import apply_patch
from ..errors import PatchError, is_invalid_patch
from ..models import FileChange
from ..parser import ADD_FILE, DELETE_FILE, MOVE_TO, UPDATE_FILE, APPLY_PATCH_GRAMMAR

LOGGER = logging.getLogger(__name__)

TOOL_NAME = "apply_patch"

FREEFORM_DESCRIPTION = """\
Use the `apply_patch` tool to edit files. The input is a patch in the
"*** Begin Patch" format: one or more Add File, Delete File or Update File
sections, terminated by "*** End Patch". Inside an Update File section, each
"@@" line starts a new edit region and the text after it is an optional anchor
that narrows where the region applies. Lines starting with ' ' are context,
'-' deletes a line and '+' inserts one. Include at least one line of context
before and after each change so the location is unique."""

FUNCTION_DESCRIPTION = FREEFORM_DESCRIPTION + """

Pass the whole patch text in the `patch` parameter. Set `request_permission`
to true when the patch touches files outside the sandbox directory."""

_PATH_HEADERS = (ADD_FILE, DELETE_FILE, UPDATE_FILE, MOVE_TO)


class AuthorizationError(RuntimeError):
    """Raised by an authorizer that refuses a write."""


class Authorizer(Protocol):
    """Write-permission gate consulted before a patch touches disk."""

    @property
    def sandbox_dir(self) -> str: ...

    def authorize_write(self, request_permission: bool, tool_name: str, paths: Sequence[str]) -> None: ...


@dataclass(slots=True)
class PolicyAuthorizer:
    """Default authorizer: sandbox containment plus blocked path prefixes."""

    sandbox_dir: str
    blocked_paths: tuple[str, ...] = (".git",)

    def authorize_write(self, request_permission: bool, tool_name: str, paths: Sequence[str]) -> None:
        root = os.path.normpath(self.sandbox_dir)
        for path in paths:
            relative = os.path.relpath(os.path.normpath(path), root)
            outside = relative == ".." or relative.startswith(".." + os.sep)
            if outside and not request_permission:
                raise AuthorizationError(f"{tool_name}: write to {path} is outside the sandbox {root}")
            if outside:
                continue
            posix = relative.replace(os.sep, "/")
            for blocked in self.blocked_paths:
                if posix == blocked or posix.startswith(blocked + "/"):
                    raise AuthorizationError(f"{tool_name}: {posix} is blocked by policy")


class ApplyPatchParams(BaseModel):
    """Arguments accepted by the function-call flavour of the tool."""

    model_config = ConfigDict(extra="ignore")

    patch: str = ""
    request_permission: bool = False


@dataclass(slots=True)
class ToolCall:
    """Tool invocation as delivered by the model stream."""

    call_id: str
    name: str
    input: str
    type: str = "function_call"


@dataclass(slots=True)
class ToolResult:
    """Text handed back to the model, plus error metadata for the caller."""

    call_id: str
    name: str
    result: str
    type: str = "function_call"
    is_error: bool = False
    invalid_patch: bool = False
    source_error: BaseException | None = None
    changes: tuple[FileChange, ...] = ()


PostCheck = Callable[[str, str], str]


@dataclass(slots=True)
class PostChecks:
    """Optional diagnostics and lint fixers run after a successful patch."""

    run_diagnostics: PostCheck | None = None
    fix_lints: PostCheck | None = None

    @property
    def enabled(self) -> bool:
        return self.run_diagnostics is not None or self.fix_lints is not None


def render_success(changes: Sequence[FileChange]) -> str:
    """Format applied changes as the tool's success payload."""
    lines = ["Updated the following files:"]
    lines.extend(change.render() for change in changes)
    content = "\n".join(lines)
    return f'<apply-patch ok="true">\n{content}\n</apply-patch>'


class ApplyPatchTool:
    """Parse tool input, authorize the touched paths and apply the patch."""

    def __init__(
        self,
        authorizer: Authorizer,
        *,
        use_freeform: bool = False,
        config: PatchConfig | None = None,
        post_checks: PostChecks | None = None,
    ) -> None:
        self._authorizer = authorizer
        self._sandbox_dir = os.path.normpath(authorizer.sandbox_dir)
        self._use_freeform = use_freeform
        self._config = config or PatchConfig()
        self._post_checks = post_checks

    @property
    def name(self) -> str:
        return TOOL_NAME

    def info(self) -> Mapping[str, Any]:
        """Describe the tool for registration with the model."""
        if self._use_freeform:
            return {
                "name": TOOL_NAME,
                "kind": "custom",
                "description": FREEFORM_DESCRIPTION,
                "grammar": {"syntax": "lark", "definition": APPLY_PATCH_GRAMMAR},
            }
        return {
            "name": TOOL_NAME,
            "kind": "function",
            "description": FUNCTION_DESCRIPTION,
            "parameters": {
                "patch": {
                    "type": "string",
                    "description": "Patch to apply using the apply_patch grammar",
                },
                "request_permission": {
                    "type": "boolean",
                    "description": "Request the user's permission to apply this patch; set for writes outside the sandbox dir",
                },
            },
            "required": ["patch"],
        }

    def run(self, call: ToolCall) -> ToolResult:
        try:
            patch, request_permission = self._extract_patch(call)
            self._check_size(patch)
            paths = self.collect_patch_paths(patch)
            if paths:
                self._authorizer.authorize_write(request_permission, TOOL_NAME, paths)
        except (ValueError, AuthorizationError) as error:
            return self._error_result(call, error)

        try:
            changes = apply_patch(self._sandbox_dir, patch, telemetry=self._config.telemetry)
        except PatchError as error:
            return self._error_result(call, error)

        result = render_success(changes)
        if self._post_checks is not None and self._post_checks.enabled:
            try:
                outputs = self._run_post_checks(self._post_checks, changes)
            except Exception as error:  # noqa: BLE001
                LOGGER.warning("Post apply_patch checks failed: %s", error)
                result = f"{result}\n\nPost apply_patch checks errored: {error}"
            else:
                if outputs:
                    result = result + "\n" + "\n".join(outputs)

        return ToolResult(
            call_id=call.call_id,
            name=call.name,
            type=call.type,
            result=result,
            changes=tuple(changes),
        )

    def _extract_patch(self, call: ToolCall) -> tuple[str, bool]:
        if self._use_freeform:
            if not call.input.strip():
                raise ValueError("patch input is required")
            return call.input, False
        try:
            params = ApplyPatchParams.model_validate_json(call.input)
        except ValidationError as error:
            raise ValueError(f"error parsing parameters: {error}") from error
        if not params.patch.strip():
            raise ValueError("patch input is required")
        return params.patch, params.request_permission

    def _check_size(self, patch: str) -> None:
        limit = self._config.max_patch_bytes
        size = len(patch.encode("utf-8", errors="surrogateescape"))
        if limit > 0 and size > limit:
            raise ValueError(f"patch is {size} bytes, exceeding the limit of {limit} bytes")

    def collect_patch_paths(self, patch: str) -> list[str]:
        """Return the absolute, de-duplicated paths named by file headers."""
        paths: list[str] = []
        for line in patch.replace("\r\n", "\n").split("\n"):
            prefix = next((header for header in _PATH_HEADERS if line.startswith(header)), None)
            if prefix is None:
                continue
            raw = line[len(prefix):].strip()
            if not raw:
                raise ValueError("path is required")
            native = raw.replace("/", os.sep)
            if os.path.isabs(native):
                absolute = os.path.normpath(native)
            else:
                absolute = os.path.join(self._sandbox_dir, native)
            if absolute not in paths:
                paths.append(absolute)
        return paths

    def _within_sandbox(self, path: str) -> bool:
        relative = os.path.relpath(path, self._sandbox_dir)
        return not (relative == ".." or relative.startswith(".." + os.sep))

    def _run_post_checks(self, checks: PostChecks, changes: Sequence[FileChange]) -> list[str]:
        directories: set[str] = set()
        for change in changes:
            absolute = os.path.normpath(os.path.join(self._sandbox_dir, change.path.replace("/", os.sep)))
            directory = os.path.dirname(absolute) or self._sandbox_dir
            if self._within_sandbox(directory):
                directories.add(directory)

        # TODO: run checks per directory when a patch spans several directories.
        if len(directories) != 1:
            return []
        (target_dir,) = directories

        outputs: list[str] = []
        if checks.run_diagnostics is not None:
            outputs.append(checks.run_diagnostics(self._sandbox_dir, target_dir))
        if checks.fix_lints is not None:
            outputs.append(checks.fix_lints(self._sandbox_dir, target_dir))
        return outputs

    @staticmethod
    def _error_result(call: ToolCall, error: BaseException) -> ToolResult:
        return ToolResult(
            call_id=call.call_id,
            name=call.name,
            type=call.type,
            result=f'<apply-patch ok="false">\n{error}\n</apply-patch>',
            is_error=True,
            invalid_patch=is_invalid_patch(error),
            source_error=error,
        )


def build_apply_patch_tool(
    sandbox_dir: Path | str,
    *,
    config: PatchConfig | None = None,
    use_freeform: bool = False,
    post_checks: PostChecks | None = None,
) -> ApplyPatchTool:
    """Create the tool with a :class:`PolicyAuthorizer` driven by ``config``."""
    settings = config or PatchConfig()
    authorizer = PolicyAuthorizer(os.fspath(sandbox_dir), blocked_paths=settings.blocked_paths)
    return ApplyPatchTool(authorizer, use_freeform=use_freeform, config=settings, post_checks=post_checks)


__all__ = [
    "ApplyPatchParams",
    "ApplyPatchTool",
    "AuthorizationError",
    "Authorizer",
    "PolicyAuthorizer",
    "PostChecks",
    "TOOL_NAME",
    "ToolCall",
    "ToolResult",
    "build_apply_patch_tool",
    "render_success",
]

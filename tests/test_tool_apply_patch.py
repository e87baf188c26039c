from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import Sandbox
from patchwright.config import PatchConfig
from patchwright.models import FileChange, FileChangeKind
from patchwright.tools import (
    ApplyPatchTool,
    AuthorizationError,
    PolicyAuthorizer,
    PostChecks,
    ToolCall,
    build_apply_patch_tool,
)

ADD_NOTE = "*** Begin Patch\n*** Add File: notes/todo.txt\n+ship it\n*** End Patch\n"


def _function_call(patch: str, **extra: object) -> ToolCall:
    payload = {"patch": patch, **extra}
    return ToolCall(call_id="call-1", name="apply_patch", input=json.dumps(payload))


def _freeform_call(patch: str) -> ToolCall:
    return ToolCall(call_id="call-2", name="apply_patch", input=patch, type="custom_tool_call")


class RecordingAuthorizer:
    def __init__(self, sandbox_dir: Path) -> None:
        self._sandbox_dir = str(sandbox_dir)
        self.calls: list[tuple[bool, str, list[str]]] = []

    @property
    def sandbox_dir(self) -> str:
        return self._sandbox_dir

    def authorize_write(self, request_permission: bool, tool_name: str, paths) -> None:
        self.calls.append((request_permission, tool_name, list(paths)))


def test_function_call_applies_patch_and_reports_changes(sandbox: Sandbox) -> None:
    tool = build_apply_patch_tool(sandbox.root)

    result = tool.run(_function_call(ADD_NOTE))

    assert not result.is_error
    assert result.result == '<apply-patch ok="true">\nUpdated the following files:\nA notes/todo.txt\n</apply-patch>'
    assert result.changes == (FileChange("notes/todo.txt", FileChangeKind.ADDED),)
    assert result.call_id == "call-1"
    assert sandbox.snapshot() == {"notes/todo.txt": "ship it\n"}


def test_freeform_call_uses_raw_input(sandbox: Sandbox) -> None:
    sandbox.write({"a.txt": "old\n"})
    tool = build_apply_patch_tool(sandbox.root, use_freeform=True)

    result = tool.run(_freeform_call("*** Begin Patch\n*** Update File: a.txt\n-old\n+new\n*** End Patch\n"))

    assert not result.is_error
    assert result.type == "custom_tool_call"
    assert "M a.txt" in result.result
    assert sandbox.snapshot() == {"a.txt": "new\n"}


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ("{not json", "error parsing parameters"),
        ('{"patch": "   "}', "patch input is required"),
        ('{"request_permission": true}', "patch input is required"),
    ],
)
def test_bad_function_parameters_are_rejected(sandbox: Sandbox, raw: str, message: str) -> None:
    tool = build_apply_patch_tool(sandbox.root)

    result = tool.run(ToolCall(call_id="c", name="apply_patch", input=raw))

    assert result.is_error
    assert message in result.result
    assert result.result.startswith('<apply-patch ok="false">')
    assert not result.invalid_patch


def test_empty_freeform_input_is_rejected(sandbox: Sandbox) -> None:
    tool = build_apply_patch_tool(sandbox.root, use_freeform=True)

    result = tool.run(_freeform_call("  \n"))

    assert result.is_error
    assert "patch input is required" in result.result


def test_patch_over_size_limit_is_rejected(sandbox: Sandbox) -> None:
    tool = build_apply_patch_tool(sandbox.root, config=PatchConfig(max_patch_bytes=16))

    result = tool.run(_function_call(ADD_NOTE))

    assert result.is_error
    assert "exceeding the limit of 16 bytes" in result.result
    assert sandbox.snapshot() == {}


def test_blocked_paths_are_refused(sandbox: Sandbox) -> None:
    tool = build_apply_patch_tool(sandbox.root)

    result = tool.run(_function_call("*** Begin Patch\n*** Add File: .git/config\n+x\n*** End Patch\n"))

    assert result.is_error
    assert ".git/config is blocked by policy" in result.result
    assert isinstance(result.source_error, AuthorizationError)
    assert sandbox.snapshot() == {}


def test_writes_outside_sandbox_need_permission(sandbox: Sandbox) -> None:
    outside = (sandbox.root.parent / "outside.txt").as_posix()
    tool = build_apply_patch_tool(sandbox.root)

    result = tool.run(_function_call(f"*** Begin Patch\n*** Add File: {outside}\n+x\n*** End Patch\n"))

    assert result.is_error
    assert "outside the sandbox" in result.result


def test_permission_does_not_bypass_engine_containment(sandbox: Sandbox) -> None:
    outside = (sandbox.root.parent / "outside.txt").as_posix()
    tool = build_apply_patch_tool(sandbox.root)

    result = tool.run(_function_call(f"*** Begin Patch\n*** Add File: {outside}\n+x\n*** End Patch\n", request_permission=True))

    assert result.is_error
    assert result.invalid_patch
    assert "escapes working directory" in result.result
    assert not (sandbox.root.parent / "outside.txt").exists()


def test_authorizer_receives_absolute_unique_paths(sandbox: Sandbox) -> None:
    sandbox.write({"src/a.txt": "a\n"})
    authorizer = RecordingAuthorizer(sandbox.root)
    tool = ApplyPatchTool(authorizer)
    patch = (
        "*** Begin Patch\n*** Update File: src/a.txt\n*** Move to: src/b.txt\n-a\n+b\n"
        "*** Delete File: src/a.txt\n*** End Patch\n"
    )

    tool.run(_function_call(patch, request_permission=True))

    assert authorizer.calls == [
        (True, "apply_patch", [str(sandbox.root / "src" / "a.txt"), str(sandbox.root / "src" / "b.txt")]),
    ]


def test_header_without_path_is_rejected(sandbox: Sandbox) -> None:
    tool = build_apply_patch_tool(sandbox.root)

    result = tool.run(_function_call("*** Begin Patch\n*** Delete File: \n*** End Patch\n"))

    assert result.is_error
    assert "path is required" in result.result


def test_engine_failures_carry_invalid_patch_flag(sandbox: Sandbox) -> None:
    sandbox.write({"a.txt": "alpha\n"})
    tool = build_apply_patch_tool(sandbox.root)

    result = tool.run(_function_call("*** Begin Patch\n*** Update File: a.txt\n-beta\n+gamma\n*** End Patch\n"))

    assert result.is_error
    assert result.invalid_patch
    assert "context not found" in result.result
    assert sandbox.snapshot() == {"a.txt": "alpha\n"}


def test_policy_authorizer_allows_sibling_of_blocked_prefix(tmp_path: Path) -> None:
    authorizer = PolicyAuthorizer(str(tmp_path), blocked_paths=(".git",))

    authorizer.authorize_write(False, "apply_patch", [str(tmp_path / ".github" / "ci.yml")])

    with pytest.raises(AuthorizationError):
        authorizer.authorize_write(False, "apply_patch", [str(tmp_path / ".git")])


def test_post_checks_run_for_single_directory(sandbox: Sandbox) -> None:
    seen: list[tuple[str, str]] = []

    def diagnostics(root: str, directory: str) -> str:
        seen.append((root, directory))
        return "diagnostics: clean"

    def lints(root: str, directory: str) -> str:
        return "lints: fixed 0"

    tool = build_apply_patch_tool(sandbox.root, post_checks=PostChecks(run_diagnostics=diagnostics, fix_lints=lints))

    result = tool.run(_function_call(ADD_NOTE))

    assert seen == [(str(sandbox.root), str(sandbox.root / "notes"))]
    assert result.result.endswith("</apply-patch>\ndiagnostics: clean\nlints: fixed 0")


def test_post_checks_skip_patches_spanning_directories(sandbox: Sandbox) -> None:
    calls: list[str] = []
    tool = build_apply_patch_tool(
        sandbox.root,
        post_checks=PostChecks(run_diagnostics=lambda root, directory: calls.append(directory) or "ran"),
    )
    patch = "*** Begin Patch\n*** Add File: one/a.txt\n+a\n*** Add File: two/b.txt\n+b\n*** End Patch\n"

    result = tool.run(_function_call(patch))

    assert not result.is_error
    assert calls == []
    assert result.result.endswith("</apply-patch>")


def test_failing_post_check_does_not_fail_the_call(sandbox: Sandbox) -> None:
    def broken(root: str, directory: str) -> str:
        raise RuntimeError("linter crashed")

    tool = build_apply_patch_tool(sandbox.root, post_checks=PostChecks(fix_lints=broken))

    result = tool.run(_function_call(ADD_NOTE))

    assert not result.is_error
    assert result.result.endswith("Post apply_patch checks errored: linter crashed")
    assert sandbox.snapshot() == {"notes/todo.txt": "ship it\n"}


def test_info_describes_both_flavours(sandbox: Sandbox) -> None:
    function_info = build_apply_patch_tool(sandbox.root).info()
    freeform_info = build_apply_patch_tool(sandbox.root, use_freeform=True).info()

    assert function_info["kind"] == "function"
    assert function_info["required"] == ["patch"]
    assert set(function_info["parameters"]) == {"patch", "request_permission"}
    assert freeform_info["kind"] == "custom"
    assert freeform_info["grammar"]["syntax"] == "lark"
    assert 'begin_patch: "*** Begin Patch" LF' in freeform_info["grammar"]["definition"]


def test_nul_byte_in_path_becomes_error_result(sandbox: Sandbox) -> None:
    tool = build_apply_patch_tool(sandbox.root, use_freeform=True)

    result = tool.run(_freeform_call("*** Begin Patch\n*** Add File: a\x00b.txt\n+x\n*** End Patch\n"))

    assert result.is_error
    assert result.invalid_patch
    assert "contains a NUL byte" in result.result
    assert sandbox.snapshot() == {}

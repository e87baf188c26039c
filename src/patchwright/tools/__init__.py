"""Tool integrations exposed to the agent runtime."""

from .apply_patch import (
    ApplyPatchTool,
    AuthorizationError,
    PolicyAuthorizer,
    PostChecks,
    ToolCall,
    ToolResult,
    build_apply_patch_tool,
)

__all__ = [
    "ApplyPatchTool",
    "AuthorizationError",
    "PolicyAuthorizer",
    "PostChecks",
    "ToolCall",
    "ToolResult",
    "build_apply_patch_tool",
]

"""Response builders for MCP tool handlers.

This module provides structured error responses with corrective actions
to help AI agents recover from errors without human intervention, plus
the small result and schema helpers shared by the control tools.
"""

import mcp.types as types

from ...core.client import RemoteAPIError


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, permission_denied,
            rate_limited, unreachable, validation_error, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Record #12 not found", "Use sync_status to list tracked documents.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def text_result(text: str, structured: dict | None = None) -> types.CallToolResult:
    """Build a successful text result with optional structured content."""
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


def no_args_schema() -> dict:
    return {"type": "object", "properties": {}, "required": []}


def control_annotations(read_only: bool = False) -> types.ToolAnnotations:
    """Annotations for local, idempotent control tools."""
    return types.ToolAnnotations(
        readOnlyHint=read_only,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )


def translate_remote_error(error: RemoteAPIError) -> types.CallToolResult:
    """Translate a remote API failure into a structured error response."""
    match error.status_code:
        case None:
            return build_error_response(
                "unreachable",
                str(error),
                "Check VAULT_SYNC_API_URL and network connectivity, then retry.",
            )
        case 401 | 403:
            return build_error_response(
                "permission_denied",
                str(error),
                "Check VAULT_SYNC_API_KEY and the key's access to this project.",
            )
        case 404:
            return build_error_response(
                "not_found",
                str(error),
                "Use sync_status to verify the document is linked to an existing record.",
            )
        case 429:
            return build_error_response(
                "rate_limited",
                str(error),
                "Wait a few seconds and retry, or use queue_changes to sync in the background.",
            )
        case code if code >= 500:
            return build_error_response(
                "server_error",
                str(error),
                "The remote service failed. Retry later.",
            )
        case _:
            return build_error_response(
                "validation_error",
                str(error),
                "Check the document's title, type mapping and content, then retry.",
            )

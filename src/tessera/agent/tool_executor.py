"""Runs local and MCP tools for a ToolUse block and wraps the outcome as a ToolResult."""

import json
import logging
from typing import (
    Any,
    Dict,
)

from tessera.core.errors import ToolError
from tessera.core.schema import (
    ToolResultBlock,
    ToolUseBlock,
)
from tessera.mcp.proxy import MCPToolDetails
from tessera.tools import (
    ToolBox,
    ToolDefinition,
    ToolInput,
)

logger = logging.getLogger(__name__)

TOOL_NOT_FOUND = "tool not found"
MCP_NO_CONTENT = "Tool executed successfully but returned no content"
MCP_EMPTY_CONTENT = "Tool executed successfully but returned empty content"

SUCCESS_MARK = "✓"
ERROR_MARK = "✗"
_DETAIL_LIMIT = 60


def invoke_tool(definition: ToolDefinition, tool_input: ToolInput) -> str:
    """
    Call the function behind *definition*.

    Returns
    -------
    str
        Whatever the tool function returns.

    Raises
    ------
    ToolError
        If the tool has no local function or its invocation raises an exception.
    """
    if definition.function is None:
        raise ToolError(f"Tool '{definition.name}' cannot be run locally.")

    try:
        logger.debug("Executing tool '%s' with input=%s", definition.name, tool_input.raw_input)
        return definition.function(tool_input)
    except ToolError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.warning("Tool '%s' failed: %s", definition.name, exc)
        raise ToolError(str(exc)) from exc


def tool_not_found(block: ToolUseBlock) -> ToolResultBlock:
    """Result for a tool name nobody provides."""
    logger.warning("Model requested unknown tool '%s'", block.name)
    return ToolResultBlock(
        tool_use_id=block.id, tool_name=block.name, content=TOOL_NOT_FOUND, is_error=True
    )


def execute_local_tool(toolbox: ToolBox, block: ToolUseBlock) -> ToolResultBlock:
    """Run a plain registered tool; every failure becomes an ``is_error`` result."""
    definition = toolbox.get(block.name)
    if definition is None:
        return tool_not_found(block)
    try:
        content = invoke_tool(definition, ToolInput(raw_input=block.input))
    except ToolError as exc:
        return ToolResultBlock(
            tool_use_id=block.id, tool_name=block.name, content=str(exc), is_error=True
        )
    return ToolResultBlock(tool_use_id=block.id, tool_name=block.name, content=content)


def _decode_mcp_args(raw_input: str) -> Dict[str, Any]:
    if not raw_input:
        return {}
    try:
        args = json.loads(raw_input)
    except json.JSONDecodeError:
        logger.warning("Ignoring invalid JSON arguments for MCP tool: %s", raw_input)
        return {}
    return args if isinstance(args, dict) else {}


def execute_mcp_tool(details: MCPToolDetails, block: ToolUseBlock) -> ToolResultBlock:
    """Forward *block* to the server that owns the tool."""
    args = _decode_mcp_args(block.input)
    try:
        result = details.server.call(details.name, args)
    except Exception as exc:  # noqa: BLE001
        logger.exception("MCP tool '%s' on server '%s' failed", details.name, details.server.id)
        return ToolResultBlock(
            tool_use_id=block.id,
            tool_name=block.name,
            content=f"MCP tool {details.name} execution error: {exc}",
            is_error=True,
        )

    if result is None:
        content = MCP_NO_CONTENT
    elif result == "":
        content = MCP_EMPTY_CONTENT
    else:
        content = str(result)
    return ToolResultBlock(tool_use_id=block.id, tool_name=block.name, content=content)


def _input_detail(raw_input: str, detail_field: str | None) -> str:
    if not detail_field:
        return ""
    try:
        args = json.loads(raw_input or "{}")
    except json.JSONDecodeError:
        return ""
    value = args.get(detail_field) if isinstance(args, dict) else None
    if value is None:
        return ""
    text = " ".join(str(value).split())
    if len(text) > _DETAIL_LIMIT:
        text = text[: _DETAIL_LIMIT - 3] + "..."
    return text


def format_tool_result_message(
    definition: ToolDefinition | None, name: str, raw_input: str, is_error: bool
) -> str:
    """One-line summary of a finished call, e.g. ``Read src/app.py ✓``."""
    label = definition.display_name if definition is not None else name
    detail = _input_detail(raw_input, definition.detail_field if definition else None)
    mark = ERROR_MARK if is_error else SUCCESS_MARK
    parts = [label, detail, mark] if detail else [label, mark]
    return " ".join(parts) + "\n"

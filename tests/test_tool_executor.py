"""
Basic sanity tests for the tool executor.

Run with:
$ pytest -q
"""

from pydantic import BaseModel

from conftest import FakeMCPServer
from tessera.agent.tool_executor import (
    execute_local_tool,
    execute_mcp_tool,
    format_tool_result_message,
    invoke_tool,
)
from tessera.core.errors import ToolError
from tessera.core.schema import ToolUseBlock
from tessera.mcp.proxy import MCPToolDetails
from tessera.tools import (
    TOOL_REGISTRY,
    ToolBox,
    ToolDefinition,
    ToolInput,
    register_definition,
    register_tool,
)
from tessera.tools.finder import FINDER_DEFINITION


class _AddInput(BaseModel):
    a: int
    b: int


# This is a stub tool for testing purposes.
@register_tool("test_add", _AddInput, label="Add", detail_field="a")
def _add(tool_input: ToolInput) -> str:
    """Return the sum of two integers (used only for tests)."""

    args = tool_input.decode(_AddInput)
    return str(args.a + args.b)


def _box() -> ToolBox:
    return ToolBox([TOOL_REGISTRY["test_add"]])


def test_invoke_tool_success() -> None:
    """Executor should return the correct value when the tool is valid."""

    assert invoke_tool(TOOL_REGISTRY["test_add"], ToolInput('{"a": 2, "b": 3}')) == "5"


def test_invoke_tool_bad_args() -> None:
    """Executor should raise *ToolError* for wrong arguments."""

    try:
        invoke_tool(TOOL_REGISTRY["test_add"], ToolInput('{"a": 2}'))  # missing 'b'
    except ToolError as exc:
        assert "_AddInput" in str(exc)
    else:  # pragma: no cover
        raise AssertionError("ToolError was not raised")


def test_register_tool_rejects_duplicates() -> None:
    """Registering the same name twice is a programming error."""

    try:
        register_tool("test_add", _AddInput)(_add)
    except ValueError as exc:
        assert "test_add" in str(exc)
    else:  # pragma: no cover
        raise AssertionError("ValueError was not raised")


def test_delegating_tool_is_registered_without_function() -> None:
    """The finder definition is registered as-is and cannot run locally."""

    ToolBox.from_registry()
    definition = TOOL_REGISTRY["finder"]
    assert definition is FINDER_DEFINITION
    assert definition.delegating and definition.function is None
    assert definition.input_schema["required"] == ["query"]

    try:
        invoke_tool(definition, ToolInput('{"query": "where?"}'))
    except ToolError as exc:
        assert "finder" in str(exc)
    else:  # pragma: no cover
        raise AssertionError("ToolError was not raised")

    try:
        register_definition(ToolDefinition(name="finder", description="again"))
    except ValueError as exc:
        assert "finder" in str(exc)
    else:  # pragma: no cover
        raise AssertionError("ValueError was not raised")


def test_registered_schema_comes_from_model() -> None:
    """The JSON schema is generated from the input model."""

    schema = TOOL_REGISTRY["test_add"].input_schema
    assert schema["type"] == "object"
    assert set(schema["properties"]) == {"a", "b"}
    assert "title" not in schema
    assert TOOL_REGISTRY["test_add"].description.startswith("Return the sum")


def test_execute_local_tool_missing() -> None:
    """Unknown names produce a *tool not found* error result."""

    result = execute_local_tool(_box(), ToolUseBlock(id="x", name="not_a_tool"))
    assert result.is_error is True
    assert result.content == "tool not found"


def test_execute_local_tool_wraps_errors() -> None:
    """Failures are reported as error results, successes as plain content."""

    ok = execute_local_tool(_box(), ToolUseBlock(id="1", name="test_add", input='{"a":1,"b":1}'))
    bad = execute_local_tool(_box(), ToolUseBlock(id="2", name="test_add", input="not json"))
    assert (ok.content, ok.is_error, ok.tool_use_id) == ("2", False, "1")
    assert bad.is_error is True and bad.tool_use_id == "2"


def test_execute_mcp_tool_passes_decoded_arguments() -> None:
    """Arguments are decoded from JSON before reaching the server."""

    server = FakeMCPServer("s", tools=["echo"], results={"echo": 7})
    details = MCPToolDetails(name="echo", server=server)
    result = execute_mcp_tool(details, ToolUseBlock(id="m", name="echo", input='{"x": 1}'))
    assert server.calls == [("echo", {"x": 1})]
    assert result.content == "7"


def test_format_tool_result_message() -> None:
    """The summary line uses the label, the detail field and a status mark."""

    definition = TOOL_REGISTRY["test_add"]
    assert format_tool_result_message(definition, "test_add", '{"a": 4}', False) == "Add 4 ✓\n"
    assert format_tool_result_message(definition, "test_add", "garbage", True) == "Add ✗\n"
    assert format_tool_result_message(None, "fetch", "{}", False) == "fetch ✓\n"

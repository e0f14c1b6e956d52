"""Shared fakes for the test-suite: a scripted LLM client, a counting store and an MCP server."""

from types import SimpleNamespace
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

import pytest

from tessera.core.errors import (
    EmptyHistoryError,
    InvalidMessageError,
    MCPError,
)
from tessera.core.schema import (
    Message,
    Role,
    TextBlock,
    ToolUseBlock,
)
from tessera.llm.base import (
    BaseLLMClient,
    DeltaCallback,
)
from tessera.store.memory import InMemoryStore
from tessera.tools import ToolDefinition


# ---------------------------------------------------------------------------
# Message helpers
# ---------------------------------------------------------------------------
def assistant_text(text: str) -> Message:
    """Assistant reply holding only text."""
    return Message(role=Role.ASSISTANT, content=[TextBlock(text=text)])


def assistant_tools(*calls: tuple) -> Message:
    """Assistant reply requesting ``(id, name, raw_input)`` tool calls."""
    return Message(
        role=Role.ASSISTANT,
        content=[ToolUseBlock(id=i, name=n, input=raw) for i, n, raw in calls],
    )


# ---------------------------------------------------------------------------
# LLM client
# ---------------------------------------------------------------------------
class FakeLLMClient(BaseLLMClient):
    """Returns scripted replies; an exception in the script is raised instead."""

    PROVIDER = "fake"

    def __init__(self, replies: Sequence[Any] = (), tokens: int = 123, model: str = "fake-model"):
        super().__init__(model=model, system_prompt="")
        self.replies = list(replies)
        self.tokens = tokens
        self.history: List[Message] = []
        self.tools: List[ToolDefinition] = []
        self.history_loads: List[List[Message]] = []
        self.inference_calls = 0

    def to_native_history(self, history: List[Message]) -> None:
        if not history:
            raise EmptyHistoryError("fake: empty conversation history")
        self.history = list(history)
        self.history_loads.append(list(history))

    def to_native_message(self, msg: Message | None) -> None:
        if msg is None or msg.role == Role.MODEL:
            raise InvalidMessageError("fake: invalid message")
        self.history.append(msg)

    def to_native_tools(self, tools: Sequence[ToolDefinition]) -> None:
        if tools:
            self.tools = list(tools)

    def run_inference(self, on_delta: DeltaCallback, streaming: bool) -> Message:
        self.inference_calls += 1
        if not self.replies:
            raise AssertionError("FakeLLMClient ran out of scripted replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if streaming and reply.text():
            on_delta(reply.text())
        return reply

    def count_tokens(self) -> int:
        return self.tokens


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------
class CountingStore(InMemoryStore):
    """In-memory store that records how often each write happened."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: Dict[str, int] = {
            "create_plan": 0,
            "save_plan": 0,
            "save_conversation": 0,
            "update_token_count": 0,
        }

    def create_plan(self, conversation_id):
        self.calls["create_plan"] += 1
        return super().create_plan(conversation_id)

    def save_plan(self, plan):
        self.calls["save_plan"] += 1
        super().save_plan(plan)

    def save_conversation(self, conversation):
        self.calls["save_conversation"] += 1
        super().save_conversation(conversation)

    def update_token_count(self, conversation_id, token_count):
        self.calls["update_token_count"] += 1
        super().update_token_count(conversation_id, token_count)


# ---------------------------------------------------------------------------
# MCP
# ---------------------------------------------------------------------------
class FakeMCPServer:
    """Stands in for ``MCPServer``; *results* maps tool name to a value or an exception."""

    def __init__(self, server_id: str = "fake", tools: Sequence[str] = (), results=None,
                 fail_start: bool = False):
        self._id = server_id
        self.tool_names = list(tools)
        self.results: Dict[str, Any] = dict(results or {})
        self.fail_start = fail_start
        self.started = False
        self.closed = False
        self.calls: List[tuple] = []

    @property
    def id(self) -> str:
        return self._id

    def start(self) -> None:
        if self.fail_start:
            raise MCPError(f"cannot start {self._id}")
        self.started = True

    def list_tools(self) -> List[Any]:
        return [
            SimpleNamespace(
                name=name,
                description=f"{name} from {self._id}",
                inputSchema={"type": "object", "properties": {"url": {"type": "string"}}},
            )
            for name in self.tool_names
        ]

    def call(self, tool_name: str, args: Dict[str, Any]) -> Any:
        self.calls.append((tool_name, args))
        result = self.results.get(tool_name)
        if isinstance(result, Exception):
            raise result
        return result

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def store() -> CountingStore:
    return CountingStore()


@pytest.fixture
def conversation(store):
    return store.create_conversation()


@pytest.fixture
def deltas() -> List[str]:
    return []

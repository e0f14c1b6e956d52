"""Tests for the delegated tool loop."""

import pytest

from conftest import (
    FakeLLMClient,
    assistant_text,
    assistant_tools,
)
from tessera.agent.subagent import Subagent
from tessera.core.errors import (
    InferenceError,
    InvalidMessageError,
    TranslationError,
)
from tessera.core.schema import (
    Message,
    Role,
    ToolResultBlock,
)
from tessera.tools import ToolBox
from tessera.tools.files import READ_FILE


class _RejectingClient(FakeLLMClient):
    """Fails translation at a chosen point."""

    def __init__(self, replies, fail_history=False, fail_on_message=None):
        super().__init__(replies)
        self.fail_history = fail_history
        self.fail_on_message = fail_on_message
        self.messages_seen = 0

    def to_native_history(self, history):
        if self.fail_history:
            raise InvalidMessageError("bad history")
        super().to_native_history(history)

    def to_native_message(self, msg):
        self.messages_seen += 1
        if self.messages_seen == self.fail_on_message:
            raise InvalidMessageError("bad message")
        super().to_native_message(msg)


def test_constructor_registers_tools():
    """Tools are translated once, when the subagent is built."""
    llm = FakeLLMClient()
    Subagent(llm, ToolBox.from_registry(READ_FILE))
    assert [t.name for t in llm.tools] == [READ_FILE]


def test_run_returns_final_message(tmp_path, monkeypatch):
    """The loop runs tools until the model answers with text."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "notes.txt").write_text("secret=42")
    llm = FakeLLMClient(
        [
            assistant_tools(("r1", READ_FILE, '{"path": "notes.txt"}')),
            assistant_text("secret is 42"),
        ]
    )
    sub = Subagent(llm, ToolBox.from_registry(READ_FILE))

    answer = sub.run("You search code.", "what is the secret?")

    assert answer.text() == "secret is 42"
    assert llm.history[0].text() == "You search code.\n\nwhat is the secret?"
    results = [b for b in llm.history[2].content if isinstance(b, ToolResultBlock)]
    assert results[0].content == "secret=42"
    assert llm.history[2].role == Role.USER


def test_unknown_tool_is_reported_not_raised():
    """The subagent only runs its own tools."""
    llm = FakeLLMClient([assistant_tools(("x", "bash", '{"command": "ls"}')), assistant_text("ok")])
    sub = Subagent(llm, ToolBox.from_registry(READ_FILE))

    sub.run("p", "q")

    (result,) = llm.history[2].content
    assert result.is_error is True
    assert result.content == "tool not found"


def test_each_run_starts_fresh():
    """A second run does not see the first run's messages."""
    llm = FakeLLMClient([assistant_text("one"), assistant_text("two")])
    sub = Subagent(llm, ToolBox())

    sub.run("p", "first")
    sub.run("p", "second")

    assert len(llm.history) == 2
    assert llm.history[0].text() == "p\n\nsecond"


@pytest.mark.parametrize(
    "kwargs, replies, expected",
    [
        ({"fail_history": True}, [], "failed to initialize conversation"),
        ({"fail_on_message": 1}, [assistant_text("x")], "failed to add message to conversation"),
        (
            {"fail_on_message": 2},
            [assistant_tools(("t", "nope", "{}"))],
            "failed to add tool results to conversation",
        ),
    ],
)
def test_translation_errors_are_wrapped(kwargs, replies, expected):
    """Translation failures carry the step that failed."""
    sub = Subagent(_RejectingClient(replies, **kwargs), ToolBox())

    with pytest.raises(TranslationError) as excinfo:
        sub.run("p", "q")

    assert str(excinfo.value).startswith(expected)


def test_inference_errors_propagate():
    """Provider failures are not wrapped."""
    sub = Subagent(FakeLLMClient([InferenceError("down")]), ToolBox())

    with pytest.raises(InferenceError):
        sub.run("p", "q")


def test_model_role_rejected():
    """Messages in the model role cannot be translated."""
    llm = FakeLLMClient()
    with pytest.raises(InvalidMessageError):
        llm.to_native_message(Message(role=Role.MODEL))

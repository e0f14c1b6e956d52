"""Tests for the Anthropic and OpenAI adapters, using stand-ins for the SDK clients."""

import json
from types import SimpleNamespace

import anthropic
import httpx
import openai
import pytest

from tessera.core.errors import (
    EmptyHistoryError,
    InferenceError,
    InvalidMessageError,
    TranslationError,
)
from tessera.core.schema import (
    Message,
    Role,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from tessera.llm import (
    DELTA_SEPARATOR,
    default_model,
    list_providers,
    load_client,
)
from tessera.llm.anthropic_client import AnthropicClient
from tessera.llm.openai_client import OpenAIClient
from tessera.tools import ToolBox

_REQUEST = httpx.Request("POST", "https://api.example.com")


def _conversation():
    return [
        Message.user_text("list files"),
        Message(
            role=Role.ASSISTANT,
            content=[
                TextBlock(text="Sure."),
                ToolUseBlock(id="t1", name="list_files", input='{"path": "."}'),
            ],
        ),
        Message(
            role=Role.USER,
            content=[
                ToolResultBlock(tool_use_id="t1", tool_name="list_files", content="[]"),
                ToolResultBlock(
                    tool_use_id="t2", tool_name="bash", content="boom", is_error=True
                ),
            ],
        ),
    ]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
def test_providers_are_registered():
    assert {"anthropic", "openai", "gemini"} <= set(list_providers())
    assert default_model("openai", subagent=True) == OpenAIClient.DEFAULT_SUBAGENT_MODEL
    client = load_client("anthropic", client=object())
    assert isinstance(client, AnthropicClient)
    assert client.model_name == AnthropicClient.DEFAULT_MODEL
    with pytest.raises(ValueError):
        load_client("nope")


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------
class _FakeStream:
    def __init__(self, events, final):
        self.events = events
        self.final = final

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def __iter__(self):
        return iter(self.events)

    def get_final_message(self):
        return self.final


class _FakeAnthropicMessages:
    def __init__(self, response=None, events=(), error=None):
        self.response = response
        self.events = list(events)
        self.error = error
        self.calls = []

    def create(self, **params):
        self.calls.append(params)
        if self.error:
            raise self.error
        return self.response

    def stream(self, **params):
        self.calls.append(params)
        return _FakeStream(self.events, self.response)

    def count_tokens(self, **params):
        self.calls.append(params)
        return SimpleNamespace(input_tokens=77)


def _anthropic(messages) -> AnthropicClient:
    return AnthropicClient(model="claude-test", client=SimpleNamespace(messages=messages))


_ANTHROPIC_REPLY = SimpleNamespace(
    content=[
        SimpleNamespace(type="text", text="Reading."),
        SimpleNamespace(type="tool_use", id="tu_1", name="read_file", input={"path": "a.py"}),
    ]
)


def test_anthropic_translates_history_and_tools():
    llm = _anthropic(_FakeAnthropicMessages())
    llm.to_native_history(_conversation())
    llm.to_native_tools(ToolBox.from_registry("read_file").tools)

    assert [m["role"] for m in llm.history] == ["user", "assistant", "user"]
    assert llm.history[1]["content"][1] == {
        "type": "tool_use",
        "id": "t1",
        "name": "list_files",
        "input": {"path": "."},
    }
    assert llm.history[2]["content"][1]["is_error"] is True
    assert llm.tools[0]["name"] == "read_file"
    assert "path" in llm.tools[0]["input_schema"]["properties"]


def test_anthropic_translation_errors():
    llm = _anthropic(_FakeAnthropicMessages())
    with pytest.raises(EmptyHistoryError):
        llm.to_native_history([])
    with pytest.raises(InvalidMessageError):
        llm.to_native_message(None)
    with pytest.raises(InvalidMessageError):
        llm.to_native_message(Message(role=Role.MODEL, content=[TextBlock(text="x")]))
    with pytest.raises(TranslationError):
        llm.to_native_message(
            Message(role=Role.ASSISTANT, content=[ToolUseBlock(id="x", name="y", input="{bad")])
        )


def test_anthropic_snapshot_inference():
    messages = _FakeAnthropicMessages(response=_ANTHROPIC_REPLY)
    llm = _anthropic(messages)
    llm.to_native_message(Message.user_text("hi"))

    msg = llm.run_inference(lambda _: None, streaming=False)

    assert msg.role == Role.ASSISTANT
    assert msg.text() == "Reading."
    (use,) = msg.tool_uses()
    assert (use.id, use.name, json.loads(use.input)) == ("tu_1", "read_file", {"path": "a.py"})
    params = messages.calls[0]
    assert params["model"] == "claude-test"
    assert params["system"][0]["cache_control"] == {"type": "ephemeral"}


def test_anthropic_streaming_sends_deltas():
    events = [
        SimpleNamespace(type="content_block_start", content_block=SimpleNamespace(type="text")),
        SimpleNamespace(
            type="content_block_delta", delta=SimpleNamespace(type="text_delta", text="Read")
        ),
        SimpleNamespace(
            type="content_block_delta", delta=SimpleNamespace(type="text_delta", text="ing.")
        ),
        SimpleNamespace(
            type="content_block_start", content_block=SimpleNamespace(type="tool_use")
        ),
        SimpleNamespace(
            type="content_block_delta",
            delta=SimpleNamespace(type="input_json_delta", partial_json='{"pa'),
        ),
    ]
    llm = _anthropic(_FakeAnthropicMessages(response=_ANTHROPIC_REPLY, events=events))
    llm.to_native_message(Message.user_text("hi"))
    deltas = []

    msg = llm.run_inference(deltas.append, streaming=True)

    assert deltas == ["Read", "ing.", DELTA_SEPARATOR]
    assert len(msg.tool_uses()) == 1


def test_anthropic_errors_and_token_count():
    error = anthropic.APIConnectionError(request=_REQUEST)
    llm = _anthropic(_FakeAnthropicMessages(error=error))
    with pytest.raises(EmptyHistoryError):
        llm.run_inference(lambda _: None, streaming=False)

    llm.to_native_message(Message.user_text("hi"))
    with pytest.raises(InferenceError):
        llm.run_inference(lambda _: None, streaming=False)
    assert llm.count_tokens() == 77


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------
class _FakeCompletions:
    def __init__(self, response=None, chunks=(), error=None):
        self.response = response
        self.chunks = list(chunks)
        self.error = error
        self.calls = []

    def create(self, **params):
        self.calls.append(params)
        if self.error:
            raise self.error
        if params.get("stream"):
            return iter(self.chunks)
        return self.response


def _openai(completions) -> OpenAIClient:
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIClient(model="gpt-test", client=client)


def _chunk(content=None, tool_calls=None, usage=None, choices=True):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        usage=usage, choices=[SimpleNamespace(delta=delta)] if choices else []
    )


def _fragment(index, id=None, name=None, arguments=None):
    return SimpleNamespace(
        index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments)
    )


def test_openai_translation_fans_out_tool_results():
    llm = _openai(_FakeCompletions())
    llm.to_native_history(_conversation())

    assert [m["role"] for m in llm.history] == ["user", "assistant", "tool", "tool"]
    assert llm.history[1]["content"] == "Sure."
    assert llm.history[1]["tool_calls"][0]["function"] == {
        "name": "list_files",
        "arguments": '{"path": "."}',
    }
    assert llm.history[2] == {"role": "tool", "tool_call_id": "t1", "content": "[]"}
    assert llm.history[3]["content"] == "ERROR: boom"
    with pytest.raises(InvalidMessageError):
        llm.to_native_message(Message(role=Role.MODEL))


def test_openai_snapshot_inference_and_usage():
    response = SimpleNamespace(
        usage=SimpleNamespace(total_tokens=55),
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(
                    content="Running.",
                    tool_calls=[
                        SimpleNamespace(
                            id="c1",
                            function=SimpleNamespace(name="bash", arguments='{"command": "ls"}'),
                        )
                    ],
                )
            )
        ],
    )
    completions = _FakeCompletions(response=response)
    llm = _openai(completions)
    llm.to_native_tools(ToolBox.from_registry("bash").tools)
    llm.to_native_message(Message.user_text("ls please"))

    msg = llm.run_inference(lambda _: None, streaming=False)

    assert msg.text() == "Running."
    assert msg.tool_uses()[0].input == '{"command": "ls"}'
    assert llm.count_tokens() == 55
    params = completions.calls[0]
    assert params["messages"][0]["role"] == "system"
    assert params["tools"][0]["function"]["name"] == "bash"


def test_openai_streaming_accumulates_tool_calls():
    chunks = [
        _chunk(content="Let me "),
        _chunk(content="check."),
        _chunk(tool_calls=[_fragment(0, id="c1", name="read_file", arguments='{"pa')]),
        _chunk(tool_calls=[_fragment(0, arguments='th": "a"}')]),
        _chunk(tool_calls=[_fragment(1, id="c2", name="list_files", arguments="{}")]),
        _chunk(usage=SimpleNamespace(total_tokens=99), choices=False),
    ]
    llm = _openai(_FakeCompletions(chunks=chunks))
    llm.to_native_message(Message.user_text("go"))
    deltas = []

    msg = llm.run_inference(deltas.append, streaming=True)

    assert deltas == ["Let me ", "check.", DELTA_SEPARATOR, DELTA_SEPARATOR]
    assert msg.text() == "Let me check."
    uses = msg.tool_uses()
    assert [(u.id, u.name, u.input) for u in uses] == [
        ("c1", "read_file", '{"path": "a"}'),
        ("c2", "list_files", "{}"),
    ]
    assert llm.count_tokens() == 99


def test_openai_errors_become_inference_errors():
    llm = _openai(_FakeCompletions(error=openai.APIConnectionError(request=_REQUEST)))
    llm.to_native_message(Message.user_text("hi"))
    with pytest.raises(InferenceError):
        llm.run_inference(lambda _: None, streaming=True)

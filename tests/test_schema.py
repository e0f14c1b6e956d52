"""Tests for messages, conversations, plans and history compaction."""

import pytest

from conftest import assistant_text
from tessera.core.schema import (
    Conversation,
    Message,
    Plan,
    Role,
    Step,
    StepStatus,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from tessera.llm.compaction import (
    TRUNCATION_MARKER,
    HistoryCompactor,
)


def _history(n: int):
    return [Message.user_text(str(i)) for i in range(n)]


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------
def test_append_assigns_sequence():
    conv = Conversation()
    for i in range(5):
        conv.append(Message.user_text(str(i)) if i % 2 == 0 else assistant_text(str(i)))
    assert [m.sequence for m in conv.messages] == [0, 1, 2, 3, 4]
    assert all(m.created_at is not None for m in conv.messages)


def test_content_blocks_are_a_tagged_union():
    conv = Conversation(
        messages=[
            Message(
                role=Role.ASSISTANT,
                content=[TextBlock(text="hi"), ToolUseBlock(id="t", name="bash", input="{}")],
            ),
            Message(
                role=Role.USER,
                content=[ToolResultBlock(tool_use_id="t", tool_name="bash", content="ok")],
            ),
        ]
    )
    restored = Conversation.model_validate_json(conv.model_dump_json())
    assert isinstance(restored.messages[0].content[1], ToolUseBlock)
    assert isinstance(restored.messages[1].content[0], ToolResultBlock)
    assert restored.messages[0].tool_uses()[0].name == "bash"


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------
def test_plan_helpers():
    plan = Plan(conversation_id="c")
    assert plan.render() == f"Plan '{plan.id}' has no steps."
    assert not plan.is_completed()

    plan.add_steps([Step(id="a", description="x"), Step(id="b", description="y")])
    with pytest.raises(ValueError):
        plan.add_steps([Step(id="a", description="dup")])
    assert plan.next_step().id == "a"

    plan.set_status("a", StepStatus.DONE)
    assert plan.next_step().id == "b"
    assert "- [x] a: x" in plan.render()


# ---------------------------------------------------------------------------
# Compaction
# ---------------------------------------------------------------------------
def test_summarize_keeps_anchor_and_tail():
    history = _history(25)
    compacted = HistoryCompactor().summarize_history(history, 20)
    assert len(compacted) == 21
    assert compacted[0] is history[0]
    assert compacted[1:] == history[5:25]


def test_summarize_short_history_is_unchanged():
    history = _history(20)
    assert HistoryCompactor().summarize_history(history, 20) == history
    assert HistoryCompactor().summarize_history([], 20) == []


def test_truncate_message_is_idempotent():
    msg = Message(
        role=Role.USER,
        content=[
            ToolResultBlock(tool_use_id="t", tool_name="read_file", content="x" * 50),
            TextBlock(text="y" * 50),
        ],
    )
    compactor = HistoryCompactor()
    once = compactor.truncate_message(msg, 20)
    twice = compactor.truncate_message(once, 20)

    assert once.content[0].content == "x" * 10 + TRUNCATION_MARKER + "x" * 10
    assert once.content[1].text == "y" * 50
    assert twice == once
    assert msg.content[0].content == "x" * 50


def test_truncate_leaves_short_results_alone():
    msg = Message(
        role=Role.USER,
        content=[ToolResultBlock(tool_use_id="t", tool_name="x", content="short")],
    )
    assert HistoryCompactor().truncate_message(msg, 20) is msg

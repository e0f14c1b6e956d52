"""
Subagent: a short-lived tool loop answering one delegated question.

It shares nothing with the main conversation.  Each ``run`` starts a fresh native history, is never
persisted, publishes no state and cannot delegate further (its toolbox holds only local tools).
"""

import logging

from tessera.agent import tool_executor
from tessera.core.errors import TranslationError
from tessera.core.schema import (
    Message,
    Role,
    ToolResultBlock,
    ToolUseBlock,
)
from tessera.llm.base import BaseLLMClient
from tessera.tools import ToolBox

logger = logging.getLogger(__name__)


def _ignore_delta(_: str) -> None:
    return None


class Subagent:
    """Drives *llm* with *toolbox* until it answers without calling tools."""

    def __init__(self, llm: BaseLLMClient, toolbox: ToolBox, streaming: bool = False):
        self.llm = llm
        self.toolbox = toolbox
        self.streaming = streaming
        self.llm.to_native_tools(list(toolbox.tools))

    def run(self, system_prompt: str, user_input: str) -> Message:
        """Answer *user_input* under *system_prompt*; return the final model message."""
        user_msg = Message.user_text(f"{system_prompt}\n\n{user_input}")
        try:
            self.llm.to_native_history([user_msg])
        except TranslationError as exc:
            raise TranslationError(f"failed to initialize conversation: {exc}") from exc

        while True:
            msg = self.llm.run_inference(_ignore_delta, self.streaming)
            try:
                self.llm.to_native_message(msg)
            except TranslationError as exc:
                raise TranslationError(f"failed to add message to conversation: {exc}") from exc

            tool_uses = msg.tool_uses()
            if not tool_uses:
                return msg

            logger.debug("Subagent executing %d tool calls", len(tool_uses))
            results = [self.execute_tool(block) for block in tool_uses]
            try:
                self.llm.to_native_message(Message(role=Role.USER, content=results))
            except TranslationError as exc:
                raise TranslationError(
                    f"failed to add tool results to conversation: {exc}"
                ) from exc

    def execute_tool(self, block: ToolUseBlock) -> ToolResultBlock:
        """Run one local tool call."""
        return tool_executor.execute_local_tool(self.toolbox, block)

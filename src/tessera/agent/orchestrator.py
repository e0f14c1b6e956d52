"""
Turn orchestrator.

One call to :meth:`Orchestrator.run` handles one user turn:

1. compact the stored history and load it, with the tool definitions, into the LLM client;
2. ask the model for a reply and append it to the conversation;
3. while the reply requests tools, run them in order, feed the results back and ask again;
4. once the model answers without tools, persist the conversation and publish the token count.

The orchestrator owns the conversation and keeps ``messages[i].sequence == i``.  Tool failures of
any kind are returned to the model as ``is_error`` results; translation, inference and store
failures propagate to the caller and end the turn.
"""

import logging
from dataclasses import (
    dataclass,
    field,
)
from enum import Enum
from typing import List

from tessera.agent import tool_executor
from tessera.agent.controller import (
    State,
    StateController,
)
from tessera.agent.subagent import Subagent
from tessera.core.errors import (
    NotFoundError,
    ToolError,
)
from tessera.core.schema import (
    Conversation,
    Message,
    Plan,
    Role,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from tessera.llm.base import (
    BaseLLMClient,
    DeltaCallback,
)
from tessera.mcp.proxy import MCPToolProxy
from tessera.store.base import ConversationStore
from tessera.tools import (
    ToolBox,
    ToolDefinition,
    ToolInput,
)
from tessera.tools.finder import FinderInput

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    """Where the orchestrator is within a turn."""

    AWAITING_USER_INPUT = "awaiting_user_input"
    MODEL_RESPONDING = "model_responding"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


@dataclass
class OrchestratorConfig:
    """Everything an orchestrator needs, built once by the caller."""

    llm: BaseLLMClient
    conversation: Conversation
    toolbox: ToolBox
    store: ConversationStore
    controller: StateController = field(default_factory=StateController)
    mcp: MCPToolProxy | None = None
    subagent: Subagent | None = None
    plan: Plan | None = None
    streaming: bool = True
    history_threshold: int = 20
    subagent_truncate_threshold: int = 25000


class Orchestrator:
    """Drives the model/tool loop for one conversation."""

    def __init__(self, config: OrchestratorConfig):
        self.llm = config.llm
        self.conversation = config.conversation
        self.toolbox = config.toolbox
        self.store = config.store
        self.controller = config.controller
        self.mcp = config.mcp
        self.sub = config.subagent
        self.plan = config.plan
        self.streaming = config.streaming
        self.history_threshold = config.history_threshold
        self.subagent_truncate_threshold = config.subagent_truncate_threshold
        self.token_count = config.conversation.token_count
        self.state = TurnState.AWAITING_USER_INPUT

    # ------------------------------------------------------------------ #
    # Turn loop
    # ------------------------------------------------------------------ #
    def run(self, user_input: str, on_delta: DeltaCallback) -> None:
        """Process one user message until the model stops calling tools."""
        conv = self.conversation
        try:
            history = self.llm.summarize_history(conv.messages, self.history_threshold)
            if history:
                self.llm.to_native_history(history)
            self.llm.to_native_tools(self.tool_definitions())

            user_msg = Message.user_text(user_input)
            self.llm.to_native_message(user_msg)
            conv.append(user_msg)

            while True:
                self.state = TurnState.MODEL_RESPONDING
                reply = self.llm.run_inference(on_delta, self.streaming)
                self.llm.to_native_message(reply)
                conv.append(reply)

                tool_uses = reply.tool_uses()
                if not tool_uses:
                    break

                self.state = TurnState.EXECUTING_TOOLS
                logger.debug("Executing %d tool calls", len(tool_uses))
                results = [self.execute_tool(block, on_delta) for block in tool_uses]
                result_msg = Message(role=Role.USER, content=results)
                self.llm.to_native_message(result_msg)
                conv.append(result_msg)

            self.state = TurnState.DONE
            self._finish_turn()
        finally:
            self.state = TurnState.AWAITING_USER_INPUT

    def _finish_turn(self) -> None:
        conv = self.conversation
        if conv.messages:
            self.store.save_conversation(conv)

        count = self.llm.count_tokens()
        self.token_count = count
        conv.token_count = count
        self.store.update_token_count(conv.id, count)
        logger.info("Conversation %s is at %d tokens", conv.id, count)

        self.controller.publish_async(State(token_count=count, model_name=self.llm.model_name))

    def tool_definitions(self) -> List[ToolDefinition]:
        """Built-in tools followed by the tools offered by MCP servers."""
        definitions = list(self.toolbox.tools)
        if self.mcp is not None:
            definitions.extend(self.mcp.definitions())
        return definitions

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #
    def execute_tool(self, block: ToolUseBlock, on_delta: DeltaCallback) -> ToolResultBlock:
        """Run one requested tool and report a one-line summary through *on_delta*."""
        definition = None
        details = self.mcp.lookup(block.name) if self.mcp is not None else None
        if details is not None:
            result = tool_executor.execute_mcp_tool(details, block)
        else:
            definition = self.toolbox.get(block.name)
            if definition is None:
                result = tool_executor.tool_not_found(block)
            else:
                result = self._execute_local_tool(definition, block)

        on_delta(
            tool_executor.format_tool_result_message(
                definition, block.name, block.input, result.is_error
            )
        )
        return result

    def _execute_local_tool(
        self, definition: ToolDefinition, block: ToolUseBlock
    ) -> ToolResultBlock:
        try:
            if definition.delegating:
                content = self._delegate(definition, block)
            elif definition.targets_plan:
                content = self._execute_plan_tool(definition, ToolInput(raw_input=block.input))
            else:
                content = tool_executor.invoke_tool(definition, ToolInput(raw_input=block.input))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Tool '%s' returned an error: %s", block.name, exc)
            return ToolResultBlock(
                tool_use_id=block.id, tool_name=block.name, content=str(exc), is_error=True
            )
        return ToolResultBlock(tool_use_id=block.id, tool_name=block.name, content=content)

    # ------------------------------------------------------------------ #
    # Delegation
    # ------------------------------------------------------------------ #
    def _delegate(self, definition: ToolDefinition, block: ToolUseBlock) -> str:
        answer = self._run_subagent(block.id, definition.name, definition.description, block.input)
        llm = self.sub.llm if self.sub is not None else self.llm
        answer = llm.truncate_message(answer, self.subagent_truncate_threshold)

        output = []
        for content in answer.content:
            if isinstance(content, TextBlock):
                output.append(content.text)
            elif isinstance(content, ToolResultBlock):
                output.append(content.content)
        return "".join(output)

    def _run_subagent(self, tool_id: str, name: str, description: str, raw_input: str) -> Message:
        """
        Hand the ``query`` of a delegating tool call to the subagent.

        The tool's description doubles as the subagent's system prompt.

        Raises
        ------
        DecodeError
            If *raw_input* has no usable ``query``; the subagent is not started.
        ToolError
            If no subagent is configured.
        """
        query = ToolInput(raw_input=raw_input).decode(FinderInput).query
        if self.sub is None:
            raise ToolError(f"Tool '{name}' needs a subagent but none is configured.")
        logger.info("Delegating %s (%s) to subagent: %s", name, tool_id, query)
        return self.sub.run(description, query)

    # ------------------------------------------------------------------ #
    # Plans
    # ------------------------------------------------------------------ #
    def _resolve_plan(self) -> Plan:
        conv_id = self.conversation.id
        if self.plan is not None and self.plan.conversation_id == conv_id:
            return self.plan
        try:
            return self.store.get_plan(conv_id)
        except NotFoundError:
            logger.info("Creating plan for conversation %s", conv_id)
            return self.store.create_plan(conv_id)

    def _execute_plan_tool(self, definition: ToolDefinition, tool_input: ToolInput) -> str:
        """
        Run a plan tool against the conversation's plan.

        The plan is saved whether or not the tool succeeded, so a partially applied mutation is
        persisted too; the tool's error is raised afterwards.
        """
        plan = self._resolve_plan()
        tool_input.plan = plan

        error: Exception | None = None
        response = ""
        try:
            response = tool_executor.invoke_tool(definition, tool_input)
        except ToolError as exc:
            error = exc

        self.store.save_plan(plan)
        self.plan = plan
        self.controller.publish_async(State(plan=plan.model_copy(deep=True)))

        if error is not None:
            raise error
        return response


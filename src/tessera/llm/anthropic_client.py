"""Anthropic Claude adapter (Messages API)."""

import json
import logging
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

import anthropic

from tessera.core.errors import (
    EmptyHistoryError,
    InferenceError,
    InvalidMessageError,
    TranslationError,
)
from tessera.core.schema import (
    ContentBlock,
    Message,
    Role,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from tessera.llm.base import (
    DELTA_SEPARATOR,
    BaseLLMClient,
    DeltaCallback,
    native_tool_names,
    register_provider,
)
from tessera.tools import ToolDefinition

logger = logging.getLogger(__name__)

_ROLES = {Role.USER: "user", Role.ASSISTANT: "assistant"}


def _to_blocks(blocks: Sequence[ContentBlock]) -> List[Dict[str, Any]]:
    native: List[Dict[str, Any]] = []
    for block in blocks:
        if isinstance(block, TextBlock):
            native.append({"type": "text", "text": block.text})
        elif isinstance(block, ToolUseBlock):
            try:
                tool_input = json.loads(block.input or "{}")
            except json.JSONDecodeError as exc:
                raise TranslationError(
                    f"anthropic: tool_use '{block.id}' has malformed input: {exc}"
                ) from exc
            native.append(
                {"type": "tool_use", "id": block.id, "name": block.name, "input": tool_input}
            )
        elif isinstance(block, ToolResultBlock):
            native.append(
                {
                    "type": "tool_result",
                    "tool_use_id": block.tool_use_id,
                    "content": block.content,
                    "is_error": block.is_error,
                }
            )
    return native


def _to_generic_message(response: Any) -> Message:
    """Convert an ``anthropic.types.Message`` into a normalized assistant message."""
    msg = Message(role=Role.ASSISTANT)
    for block in response.content:
        if block.type == "text":
            msg.content.append(TextBlock(text=block.text))
        elif block.type == "tool_use":
            msg.content.append(
                ToolUseBlock(id=block.id, name=block.name, input=json.dumps(block.input or {}))
            )
        else:
            logger.debug("Ignoring Anthropic content block of type %s", block.type)
    return msg


@register_provider("anthropic")
class AnthropicClient(BaseLLMClient):
    """Anthropic Claude client with prompt caching on the system prompt."""

    MODELS = (
        "claude-opus-4-1",
        "claude-opus-4-0",
        "claude-sonnet-4-5",
        "claude-sonnet-4-0",
        "claude-3-7-sonnet-latest",
        "claude-haiku-4-5",
        "claude-3-5-haiku-latest",
    )
    DEFAULT_MODEL = "claude-sonnet-4-0"
    DEFAULT_SUBAGENT_MODEL = "claude-3-5-haiku-latest"

    def __init__(
        self,
        model: str,
        max_tokens: int = 8192,
        system_prompt: str | None = None,
        client: Any = None,
        api_key: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(model, max_tokens, system_prompt, **kwargs)
        self._client = client or anthropic.Anthropic(api_key=api_key)
        self.history: List[Dict[str, Any]] = []
        self.tools: List[Dict[str, Any]] = []

    # ------------------------------------------------------------------ #
    # Translation
    # ------------------------------------------------------------------ #
    def to_native_history(self, history: List[Message]) -> None:
        if not history:
            raise EmptyHistoryError("anthropic: empty conversation history")
        self.history = []
        for msg in history:
            self.to_native_message(msg)

    def to_native_message(self, msg: Message | None) -> None:
        if msg is None:
            raise InvalidMessageError("anthropic: message is None")
        role = _ROLES.get(msg.role)
        if role is None:
            raise InvalidMessageError(f"anthropic: invalid message role '{msg.role.value}'")
        self.history.append({"role": role, "content": _to_blocks(msg.content)})

    def to_native_tools(self, tools: Sequence[ToolDefinition]) -> None:
        if not tools:
            return
        self.tools = [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": dict(tool.input_schema),
            }
            for tool in native_tool_names(tools).values()
        ]

    # ------------------------------------------------------------------ #
    # Inference
    # ------------------------------------------------------------------ #
    def _system(self) -> List[Dict[str, Any]]:
        if not self.system_prompt:
            return []
        return [
            {"type": "text", "text": self.system_prompt, "cache_control": {"type": "ephemeral"}}
        ]

    def _params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": self.model_name,
            "max_tokens": self.max_tokens,
            "messages": self.history,
        }
        if self.tools:
            params["tools"] = self.tools
        system = self._system()
        if system:
            params["system"] = system
        return params

    def run_inference(self, on_delta: DeltaCallback, streaming: bool) -> Message:
        if not self.history:
            raise EmptyHistoryError("anthropic: no messages in conversation history")

        params = self._params()
        try:
            if streaming:
                return self._run_inference_stream(params, on_delta)
            return self._run_inference_snapshot(params)
        except anthropic.APIError as exc:
            raise InferenceError(f"anthropic inference failed: {exc}") from exc

    def _run_inference_stream(self, params: Dict[str, Any], on_delta: DeltaCallback) -> Message:
        with self._client.messages.stream(**params) as stream:
            for event in stream:
                if event.type == "content_block_start" and event.content_block.type != "text":
                    on_delta(DELTA_SEPARATOR)
                elif event.type == "content_block_delta" and event.delta.type == "text_delta":
                    if event.delta.text:
                        on_delta(event.delta.text)
            response = stream.get_final_message()
        return _to_generic_message(response)

    def _run_inference_snapshot(self, params: Dict[str, Any]) -> Message:
        response = self._client.messages.create(**params)
        return _to_generic_message(response)

    def count_tokens(self) -> int:
        params = self._params()
        params.pop("max_tokens")
        try:
            result = self._client.messages.count_tokens(**params)
        except anthropic.APIError as exc:
            raise InferenceError(f"anthropic token count failed: {exc}") from exc
        return int(result.input_tokens)

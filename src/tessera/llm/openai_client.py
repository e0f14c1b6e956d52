"""OpenAI adapter (Chat Completions with function tools)."""

import logging
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

import openai

from tessera.core.errors import (
    EmptyHistoryError,
    InferenceError,
    InvalidMessageError,
)
from tessera.core.schema import (
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


@register_provider("openai")
class OpenAIClient(BaseLLMClient):
    """
    OpenAI chat-completions client.

    Normalized user messages carrying tool results fan out into one ``role="tool"`` message per
    result, which is the shape the API expects right after an assistant ``tool_calls`` message.
    OpenAI has no token counting endpoint, so ``count_tokens`` reports the usage the provider
    billed for the most recent completion.
    """

    MODELS = ("gpt-4.1", "gpt-4.1-mini", "gpt-4o", "gpt-4o-mini", "o4-mini")
    DEFAULT_MODEL = "gpt-4.1"
    DEFAULT_SUBAGENT_MODEL = "gpt-4.1-mini"

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
        self._client = client or openai.OpenAI(api_key=api_key)
        self.history: List[Dict[str, Any]] = []
        self.tools: List[Dict[str, Any]] = []
        self._last_usage = 0

    # ------------------------------------------------------------------ #
    # Translation
    # ------------------------------------------------------------------ #
    def to_native_history(self, history: List[Message]) -> None:
        if not history:
            raise EmptyHistoryError("openai: empty conversation history")
        self.history = []
        for msg in history:
            self.to_native_message(msg)

    def to_native_message(self, msg: Message | None) -> None:
        if msg is None:
            raise InvalidMessageError("openai: message is None")

        if msg.role == Role.USER:
            texts = []
            for block in msg.content:
                if isinstance(block, ToolResultBlock):
                    content = f"ERROR: {block.content}" if block.is_error else block.content
                    self.history.append(
                        {"role": "tool", "tool_call_id": block.tool_use_id, "content": content}
                    )
                elif isinstance(block, TextBlock):
                    texts.append(block.text)
            if texts:
                self.history.append({"role": "user", "content": "\n".join(texts)})
            return

        if msg.role == Role.ASSISTANT:
            native: Dict[str, Any] = {"role": "assistant", "content": msg.text()}
            tool_calls = [
                {
                    "id": block.id,
                    "type": "function",
                    "function": {"name": block.name, "arguments": block.input or "{}"},
                }
                for block in msg.tool_uses()
            ]
            if tool_calls:
                native["tool_calls"] = tool_calls
            self.history.append(native)
            return

        raise InvalidMessageError(f"openai: invalid message role '{msg.role.value}'")

    def to_native_tools(self, tools: Sequence[ToolDefinition]) -> None:
        if not tools:
            return
        self.tools = [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": dict(tool.input_schema),
                },
            }
            for tool in native_tool_names(tools).values()
        ]

    # ------------------------------------------------------------------ #
    # Inference
    # ------------------------------------------------------------------ #
    def _params(self) -> Dict[str, Any]:
        messages = list(self.history)
        if self.system_prompt:
            messages.insert(0, {"role": "system", "content": self.system_prompt})
        params: Dict[str, Any] = {
            "model": self.model_name,
            "max_completion_tokens": self.max_tokens,
            "messages": messages,
        }
        if self.tools:
            params["tools"] = self.tools
        return params

    def run_inference(self, on_delta: DeltaCallback, streaming: bool) -> Message:
        if not self.history:
            raise EmptyHistoryError("openai: no messages in conversation history")

        params = self._params()
        try:
            if streaming:
                return self._run_inference_stream(params, on_delta)
            return self._run_inference_snapshot(params)
        except openai.OpenAIError as exc:
            raise InferenceError(f"openai inference failed: {exc}") from exc

    def _run_inference_snapshot(self, params: Dict[str, Any]) -> Message:
        response = self._client.chat.completions.create(**params)
        if response.usage is not None:
            self._last_usage = response.usage.total_tokens
        if not response.choices:
            raise InferenceError("openai: no choices returned")

        choice = response.choices[0].message
        msg = Message(role=Role.ASSISTANT)
        if choice.content:
            msg.content.append(TextBlock(text=choice.content))
        for call in choice.tool_calls or []:
            msg.content.append(
                ToolUseBlock(
                    id=call.id,
                    name=call.function.name,
                    input=call.function.arguments or "{}",
                )
            )
        return msg

    def _run_inference_stream(self, params: Dict[str, Any], on_delta: DeltaCallback) -> Message:
        stream = self._client.chat.completions.create(
            **params, stream=True, stream_options={"include_usage": True}
        )

        text_parts: List[str] = []
        calls: Dict[int, Dict[str, Any]] = {}
        for chunk in stream:
            if chunk.usage is not None:
                self._last_usage = chunk.usage.total_tokens
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta.content:
                on_delta(delta.content)
                text_parts.append(delta.content)
            for fragment in delta.tool_calls or []:
                entry = calls.get(fragment.index)
                if entry is None:
                    entry = calls[fragment.index] = {"id": "", "name": "", "arguments": []}
                    on_delta(DELTA_SEPARATOR)
                if fragment.id:
                    entry["id"] = fragment.id
                if fragment.function is not None:
                    if fragment.function.name:
                        entry["name"] += fragment.function.name
                    if fragment.function.arguments:
                        entry["arguments"].append(fragment.function.arguments)

        msg = Message(role=Role.ASSISTANT)
        if text_parts:
            msg.content.append(TextBlock(text="".join(text_parts)))
        for index in sorted(calls):
            entry = calls[index]
            msg.content.append(
                ToolUseBlock(
                    id=entry["id"],
                    name=entry["name"],
                    input="".join(entry["arguments"]) or "{}",
                )
            )
        return msg

    def count_tokens(self) -> int:
        return self._last_usage

"""Gemini adapter (google-genai SDK, function calling)."""

import base64
import binascii
import json
import logging
import uuid
from typing import (
    Any,
    Iterable,
    List,
    Sequence,
)

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

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

# Gemini calls the assistant side of a conversation "model"
_ROLES = {Role.USER: "user", Role.ASSISTANT: "model", Role.MODEL: "model"}


def _to_parts(blocks: Sequence[ContentBlock]) -> List[types.Part]:
    parts: List[types.Part] = []
    for block in blocks:
        if isinstance(block, TextBlock):
            if block.text:
                parts.append(types.Part(text=block.text))
        elif isinstance(block, ToolUseBlock):
            try:
                args = json.loads(block.input or "{}")
            except json.JSONDecodeError as exc:
                raise TranslationError(
                    f"gemini: tool_use '{block.id}' has malformed input: {exc}"
                ) from exc
            signature = None
            # The signature must be sent back with the call it arrived on
            if block.thought:
                try:
                    signature = base64.b64decode(block.thought, validate=True)
                except binascii.Error as exc:
                    raise TranslationError(
                        f"gemini: tool_use '{block.id}' has a malformed thought signature"
                    ) from exc
            parts.append(
                types.Part(
                    function_call=types.FunctionCall(name=block.name, args=args),
                    thought_signature=signature,
                )
            )
        elif isinstance(block, ToolResultBlock):
            key = "error" if block.is_error else "result"
            parts.append(
                types.Part(
                    function_response=types.FunctionResponse(
                        name=block.tool_name, response={key: block.content}
                    )
                )
            )
    return parts


def _to_tool_use(part: Any) -> ToolUseBlock:
    call = part.function_call
    signature = getattr(part, "thought_signature", None)
    return ToolUseBlock(
        id=call.id or f"call_{uuid.uuid4().hex}",
        name=call.name,
        input=json.dumps(call.args or {}),
        thought=base64.b64encode(signature).decode("ascii") if signature else None,
    )


def _candidate_parts(response: Any) -> List[Any]:
    if not response.candidates or response.candidates[0].content is None:
        return []
    return list(response.candidates[0].content.parts or [])


def _to_generic_message(parts: Iterable[Any], on_delta: DeltaCallback | None = None) -> Message:
    """
    Assemble a normalized assistant message from response parts.

    Text is joined into one leading block.  Thought summaries are skipped.  When *on_delta* is
    given, text is forwarded as it is read and every function call emits ``DELTA_SEPARATOR``.
    """
    text: List[str] = []
    uses: List[ToolUseBlock] = []
    for part in parts:
        if part.function_call is not None:
            if on_delta is not None:
                on_delta(DELTA_SEPARATOR)
            uses.append(_to_tool_use(part))
        elif part.text and not getattr(part, "thought", None):
            if on_delta is not None:
                on_delta(part.text)
            text.append(part.text)

    msg = Message(role=Role.ASSISTANT)
    if text:
        msg.content.append(TextBlock(text="".join(text)))
    msg.content.extend(uses)
    if not msg.content:
        raise InferenceError("gemini: model returned no usable content")
    return msg


@register_provider("gemini")
class GeminiClient(BaseLLMClient):
    """
    Google Gemini client.

    Assistant messages are sent with the native ``model`` role.  Gemini attaches an opaque thought
    signature to function calls made while thinking; it is kept base64-encoded in
    ``ToolUseBlock.thought`` and returned with the call on later requests.
    """

    MODELS = ("gemini-2.5-pro", "gemini-2.5-flash", "gemini-2.5-flash-lite", "gemini-2.0-flash")
    DEFAULT_MODEL = "gemini-2.5-pro"
    DEFAULT_SUBAGENT_MODEL = "gemini-2.5-flash"

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
        self._client = client or genai.Client(api_key=api_key)
        self.contents: List[types.Content] = []
        self.tools: List[types.Tool] = []

    # ------------------------------------------------------------------ #
    # Translation
    # ------------------------------------------------------------------ #
    def to_native_history(self, history: List[Message]) -> None:
        if not history:
            raise EmptyHistoryError("gemini: empty conversation history")
        self.contents = []
        for msg in history:
            self.to_native_message(msg)

    def to_native_message(self, msg: Message | None) -> None:
        if msg is None:
            raise InvalidMessageError("gemini: message is None")
        parts = _to_parts(msg.content)
        if not parts:
            raise InvalidMessageError("gemini: message has no content parts")
        self.contents.append(types.Content(role=_ROLES[msg.role], parts=parts))

    def to_native_tools(self, tools: Sequence[ToolDefinition]) -> None:
        if not tools:
            return
        declarations = [
            types.FunctionDeclaration(
                name=tool.name,
                description=tool.description,
                parameters_json_schema=dict(tool.input_schema),
            )
            for tool in native_tool_names(tools).values()
        ]
        self.tools = [types.Tool(function_declarations=declarations)]

    # ------------------------------------------------------------------ #
    # Inference
    # ------------------------------------------------------------------ #
    def _config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            max_output_tokens=self.max_tokens,
            system_instruction=self.system_prompt or None,
            tools=self.tools or None,
        )

    def run_inference(self, on_delta: DeltaCallback, streaming: bool) -> Message:
        if not self.contents:
            raise EmptyHistoryError("gemini: no messages in conversation history")

        params = {"model": self.model_name, "contents": self.contents, "config": self._config()}
        logger.debug("gemini: %d contents, streaming=%s", len(self.contents), streaming)
        try:
            if streaming:
                stream = self._client.models.generate_content_stream(**params)
                parts = (part for chunk in stream for part in _candidate_parts(chunk))
                return _to_generic_message(parts, on_delta)
            response = self._client.models.generate_content(**params)
            return _to_generic_message(_candidate_parts(response))
        except genai_errors.APIError as exc:
            raise InferenceError(f"gemini inference failed: {exc}") from exc

    def count_tokens(self) -> int:
        try:
            result = self._client.models.count_tokens(model=self.model_name, contents=self.contents)
        except genai_errors.APIError as exc:
            raise InferenceError(f"gemini token count failed: {exc}") from exc
        return int(result.total_tokens or 0)

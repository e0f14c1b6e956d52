"""
LLM client interface for Tessera.

This module is the contract between the orchestration loop and a model provider.  Everything above
it (orchestrator, subagent, tools) only manipulates normalized ``Message``/``ContentBlock`` objects;
each adapter owns the translation to and from its provider's native shapes.

Additional providers can be added by subclassing :class:`BaseLLMClient` and registering via
:func:`register_provider`.
"""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Sequence,
    Type,
)

from tessera.core.schema import Message
from tessera.llm.compaction import HistoryCompactor
from tessera.tools import ToolDefinition

logger = logging.getLogger(__name__)

DeltaCallback = Callable[[str], None]
"""Receives incremental text while a streaming inference call is in flight."""

DELTA_SEPARATOR = "\n"
"""Sent through the delta callback for every non-text delta."""


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PROVIDER_REGISTRY: dict[str, Type["BaseLLMClient"]] = {}


def register_provider(name: str) -> Callable:
    """Decorator to register an LLM client class under *name*."""

    def wrapper(cls: Type["BaseLLMClient"]) -> Type["BaseLLMClient"]:
        cls.PROVIDER = name
        _PROVIDER_REGISTRY[name] = cls
        return cls

    return wrapper


def get_provider(name: str) -> Type["BaseLLMClient"]:
    """Return the client class registered under *name*."""
    cls = _PROVIDER_REGISTRY.get(name.lower())
    if cls is None:
        raise ValueError(f"Provider '{name}' is not registered.")
    return cls


def list_providers() -> List[str]:
    """Names of every registered provider."""
    return sorted(_PROVIDER_REGISTRY)


def list_models(provider: str) -> List[str]:
    """Known model names for *provider*."""
    return list(get_provider(provider).MODELS)


def default_model(provider: str, subagent: bool = False) -> str:
    """Default model for the main agent, or the cheaper one used by subagents."""
    cls = get_provider(provider)
    return cls.DEFAULT_SUBAGENT_MODEL if subagent else cls.DEFAULT_MODEL


def load_client(
    provider: str,
    model: str | None = None,
    max_tokens: int = 8192,
    subagent: bool = False,
    **kwargs: Any,
) -> "BaseLLMClient":
    """
    Factory that returns an instantiated client.

    *model* falls back to the provider's default (or its subagent default when *subagent* is set).
    Extra keyword arguments go to the client constructor, e.g. ``api_key`` or a prebuilt SDK
    ``client``.
    """
    cls = get_provider(provider)
    chosen = model or default_model(provider, subagent=subagent)
    logger.debug("Loading %s client for model %s", cls.PROVIDER, chosen)
    return cls(model=chosen, max_tokens=max_tokens, **kwargs)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseLLMClient(ABC):
    """Abstract, provider-agnostic LLM client holding its own provider-native history."""

    PROVIDER: ClassVar[str] = ""
    MODELS: ClassVar[Sequence[str]] = ()
    DEFAULT_MODEL: ClassVar[str] = ""
    DEFAULT_SUBAGENT_MODEL: ClassVar[str] = ""

    # Common system prompt for all providers
    SYSTEM_PROMPT: ClassVar[
        str
    ] = """\
You are Tessera, a coding assistant working inside the user's project directory.
Use the available tools to inspect and change files, run commands and keep a plan for
multi-step work. Prefer the finder tool for broad codebase questions.
Call tools whenever they help; when the task is done, answer in plain text without calling tools.
Be concise.
"""

    def __init__(
        self,
        model: str,
        max_tokens: int = 8192,
        system_prompt: str | None = None,
        compactor: HistoryCompactor | None = None,
    ):
        self._model = model
        self.max_tokens = max_tokens
        self.system_prompt = system_prompt if system_prompt is not None else self.SYSTEM_PROMPT
        self.compactor = compactor or HistoryCompactor()

    @property
    def provider_name(self) -> str:
        """Registered provider name."""
        return self.PROVIDER

    @property
    def model_name(self) -> str:
        """Model this client talks to."""
        return self._model

    # ------------------------------------------------------------------ #
    # Provider-specific translation and inference
    # ------------------------------------------------------------------ #
    @abstractmethod
    def to_native_history(self, history: List[Message]) -> None:
        """Replace the native history with *history*; raise ``EmptyHistoryError`` if empty."""

    @abstractmethod
    def to_native_message(self, msg: Message | None) -> None:
        """Append one message; raise ``InvalidMessageError`` for None or an unknown role."""

    @abstractmethod
    def to_native_tools(self, tools: Sequence[ToolDefinition]) -> None:
        """Translate tool definitions to the provider's format; no-op when *tools* is empty."""

    @abstractmethod
    def run_inference(self, on_delta: DeltaCallback, streaming: bool) -> Message:
        """
        Run one completion over the native history and return the normalized reply.

        When *streaming* is set, *on_delta* is called synchronously for every text fragment (and
        with ``DELTA_SEPARATOR`` for non-text deltas) before the assembled message is returned.
        """

    @abstractmethod
    def count_tokens(self) -> int:
        """Provider-side token count of the current native history."""

    # ------------------------------------------------------------------ #
    # Shared compaction
    # ------------------------------------------------------------------ #
    def summarize_history(self, history: List[Message], threshold: int) -> List[Message]:
        """Keep the anchor message plus the last *threshold* messages."""
        return self.compactor.summarize_history(history, threshold)

    def truncate_message(self, msg: Message, threshold: int) -> Message:
        """Shorten tool results of at least *threshold* characters."""
        return self.compactor.truncate_message(msg, threshold)


def native_tool_names(tools: Sequence[ToolDefinition]) -> Dict[str, ToolDefinition]:
    """Index definitions by name, warning about duplicates (the last one wins)."""
    index: Dict[str, ToolDefinition] = {}
    for tool in tools:
        if tool.name in index:
            logger.warning(
                "Tool '%s' is defined more than once; using the last definition", tool.name
            )
        index[tool.name] = tool
    return index

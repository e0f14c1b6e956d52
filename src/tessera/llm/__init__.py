"""
Provider-agnostic LLM clients.

Importing this package registers the bundled providers, so ``load_client("anthropic")``,
``load_client("openai")`` and ``load_client("gemini")`` work without further imports.
"""

from tessera.llm.base import (
    DELTA_SEPARATOR,
    BaseLLMClient,
    DeltaCallback,
    default_model,
    list_models,
    list_providers,
    load_client,
    register_provider,
)
from tessera.llm.compaction import (
    TRUNCATION_MARKER,
    HistoryCompactor,
)

# Register the bundled providers
from tessera.llm import (  # noqa: E402,F401  isort:skip
    anthropic_client,
    gemini_client,
    openai_client,
)

__all__ = [
    "DELTA_SEPARATOR",
    "BaseLLMClient",
    "DeltaCallback",
    "HistoryCompactor",
    "TRUNCATION_MARKER",
    "default_model",
    "list_models",
    "list_providers",
    "load_client",
    "register_provider",
]

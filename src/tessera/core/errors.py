"""
Error taxonomy for the turn engine.

Translation, inference and store errors abort a turn.  Tool, decode and MCP errors are captured at
the dispatch seam and fed back to the model as ``is_error`` tool results.
"""


class TesseraError(Exception):
    """Base class for every error raised by the engine."""


class TranslationError(TesseraError):
    """A normalized message or tool could not be converted to the provider's native form."""


class EmptyHistoryError(TranslationError):
    """Raised when a history operation needs at least one message and got none."""


class InvalidMessageError(TranslationError):
    """Raised for a missing message or a role the provider adapter does not recognise."""


class InferenceError(TesseraError):
    """The provider call failed (transport, auth, rate limit, malformed response...)."""


class ToolError(TesseraError):
    """A tool could not run or reported a failure."""


class DecodeError(TesseraError):
    """Tool input JSON did not match the shape the tool expects."""


class StoreError(TesseraError):
    """The conversation/plan store failed."""


class NotFoundError(StoreError):
    """The requested conversation or plan does not exist."""


class MCPError(TesseraError):
    """An MCP server could not be started or a remote tool call failed."""

"""
Tool registry for Tessera.

This module provides a decorator to register tools and an immutable ``ToolBox`` to hand a chosen set
of them to an orchestrator.  A tool is a function taking a ``ToolInput`` and returning a string; its
JSON input schema is generated from a pydantic model describing the arguments.
"""

import logging
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
)

from pydantic import (
    BaseModel,
    ValidationError,
)

from tessera.core.errors import DecodeError
from tessera.core.schema import Plan

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass
class ToolInput:
    """Arguments handed to a tool function: the raw JSON plus an optionally injected plan."""

    raw_input: str = "{}"
    plan: Optional[Plan] = None

    def decode(self, model: Type[M]) -> M:
        """Parse the raw JSON into *model*, raising ``DecodeError`` when it does not fit."""
        try:
            return model.model_validate_json(self.raw_input or "{}")
        except ValidationError as exc:
            raise DecodeError(f"invalid input for {model.__name__}: {exc}") from exc


ToolFunction = Callable[[ToolInput], str]


@dataclass(frozen=True)
class ToolDefinition:
    """A named, schema-described tool.  Immutable once built."""

    name: str
    description: str
    input_schema: Mapping[str, Any] = field(default_factory=lambda: {"type": "object"})
    function: Optional[ToolFunction] = None
    delegating: bool = False
    targets_plan: bool = False
    label: str = ""
    detail_field: Optional[str] = None

    @property
    def display_name(self) -> str:
        """Short label used in one-line result summaries."""
        return self.label or self.name


def input_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    """JSON schema for a pydantic input model, trimmed to what LLM tool APIs accept."""
    schema = model.model_json_schema()
    schema.pop("title", None)
    schema.setdefault("properties", {})
    return schema


TOOL_REGISTRY: Dict[str, ToolDefinition] = {}
"""Global registry of built-in tool definitions."""


def register_definition(definition: ToolDefinition) -> ToolDefinition:
    """
    Add a ready-made definition to the registry.

    Used directly for delegating tools, which are answered by a subagent and have no local function.

    Raises
    ------
    ValueError
        If a tool with the same name is already registered.
    """
    if definition.name in TOOL_REGISTRY:
        raise ValueError(f"Tool '{definition.name}' is already registered.")
    logger.debug("Registering tool '%s'", definition.name)
    TOOL_REGISTRY[definition.name] = definition
    return definition


def register_tool(
    name: str,
    input_model: Type[BaseModel],
    description: str | None = None,
    *,
    targets_plan: bool = False,
    label: str = "",
    detail_field: str | None = None,
) -> Callable:
    """
    Register a tool function under *name*.

    The function is registered as a decorator, so it can be used like this:
        @register_tool("read_file", ReadFileInput, label="Read", detail_field="path")
        def read_file(tool_input: ToolInput) -> str:
            ...

    The description defaults to the function's docstring.

    Raises
    ------
    ValueError
        If a tool with the same name is already registered.
    """
    if name in TOOL_REGISTRY:
        raise ValueError(f"Tool '{name}' is already registered.")

    def wrapper(fn: ToolFunction) -> ToolFunction:
        register_definition(
            ToolDefinition(
                name=name,
                description=(description or fn.__doc__ or "").strip(),
                input_schema=input_schema(input_model),
                function=fn,
                targets_plan=targets_plan,
                label=label,
                detail_field=detail_field,
            )
        )
        return fn

    return wrapper


class ToolBox:
    """An immutable, name-keyed set of tool definitions."""

    def __init__(self, tools: Iterable[ToolDefinition] = ()):
        ordered: List[ToolDefinition] = []
        index: Dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.name in index:
                raise ValueError(f"Tool '{tool.name}' appears twice in the toolbox.")
            index[tool.name] = tool
            ordered.append(tool)
        self._tools: Tuple[ToolDefinition, ...] = tuple(ordered)
        self._index: Mapping[str, ToolDefinition] = index

    @classmethod
    def from_registry(cls, *names: str) -> "ToolBox":
        """Build a toolbox from registered built-ins (all of them when no names are given)."""
        load_builtin_tools()
        if not names:
            return cls(TOOL_REGISTRY.values())
        missing = [n for n in names if n not in TOOL_REGISTRY]
        if missing:
            raise ValueError(f"Unknown tools: {', '.join(missing)}")
        return cls(TOOL_REGISTRY[n] for n in names)

    @property
    def tools(self) -> Tuple[ToolDefinition, ...]:
        """Definitions in registration order."""
        return self._tools

    def get(self, name: str) -> ToolDefinition | None:
        """Return the definition registered under *name*, or None."""
        return self._index.get(name)

    def names(self) -> List[str]:
        """Names of every tool in the box."""
        return [t.name for t in self._tools]

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)


def load_builtin_tools() -> None:
    """Import the built-in tool modules so their ``@register_tool`` decorators run."""
    # pylint: disable=import-outside-toplevel,unused-import
    from tessera.tools import (  # noqa: F401
        files,
        finder,
        plan,
        search,
        shell,
    )

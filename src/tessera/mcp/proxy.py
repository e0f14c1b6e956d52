"""Index of tools offered by MCP servers, and the servers that own them."""

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
    List,
    Mapping,
    Protocol,
)

from tessera.mcp.config import ServerConfig
from tessera.mcp.server import MCPServer
from tessera.tools import ToolDefinition

logger = logging.getLogger(__name__)


class ServerHandle(Protocol):
    """The part of :class:`MCPServer` the proxy and dispatch rely on."""

    @property
    def id(self) -> str: ...

    def start(self) -> None: ...

    def list_tools(self) -> List[Any]: ...

    def call(self, tool_name: str, args: Dict[str, Any]) -> Any: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class MCPToolDetails:
    """A remote tool and the server that answers it."""

    name: str
    server: ServerHandle
    description: str = ""
    input_schema: Mapping[str, Any] = field(default_factory=lambda: {"type": "object"})


class MCPToolProxy:
    """Starts configured MCP servers and routes tool names to them."""

    def __init__(
        self,
        configs: Iterable[ServerConfig] = (),
        server_factory: Callable[[ServerConfig], ServerHandle] = MCPServer,
    ):
        self.server_configs: List[ServerConfig] = list(configs)
        self.server_factory = server_factory
        self.active_servers: List[ServerHandle] = []
        self.tool_map: Dict[str, MCPToolDetails] = {}

    def register(self, server: ServerHandle) -> int:
        """Index the tools of a started *server*; return how many were added."""
        added = 0
        for tool in server.list_tools():
            if tool.name in self.tool_map:
                logger.warning(
                    "MCP tool '%s' from server '%s' shadows the one from '%s'",
                    tool.name,
                    server.id,
                    self.tool_map[tool.name].server.id,
                )
            self.tool_map[tool.name] = MCPToolDetails(
                name=tool.name,
                server=server,
                description=tool.description or "",
                input_schema=tool.inputSchema or {"type": "object"},
            )
            added += 1
        self.active_servers.append(server)
        return added

    def register_servers(self) -> None:
        """Start every configured server; failures are logged and the server skipped."""
        for config in self.server_configs:
            server = self.server_factory(config)
            try:
                server.start()
                count = self.register(server)
            except Exception as exc:  # noqa: BLE001
                logger.error("Skipping MCP server '%s': %s", config.id, exc)
                server.close()
                continue
            logger.info("MCP server '%s' provides %d tools", config.id, count)

    def lookup(self, name: str) -> MCPToolDetails | None:
        """Details of the MCP tool called *name*, or None when no server offers it."""
        return self.tool_map.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.tool_map

    def definitions(self) -> List[ToolDefinition]:
        """Tool definitions to advertise to the model."""
        return [
            ToolDefinition(
                name=details.name,
                description=details.description,
                input_schema=details.input_schema,
                label=details.name,
            )
            for details in self.tool_map.values()
        ]

    def shutdown(self) -> None:
        """Close every active server."""
        for server in self.active_servers:
            try:
                server.close()
            except Exception:  # noqa: BLE001
                logger.exception("Error while closing MCP server '%s'", server.id)
        self.active_servers.clear()
        self.tool_map.clear()

"""
Synchronous handle on an MCP server spoken to over stdio.

The ``mcp`` SDK is asyncio-based while the turn loop is synchronous, so every server gets a private
event loop on a daemon thread.  The stdio transport and client session live inside one long-running
task on that loop (anyio requires them to be entered and exited from the same task); calls from the
turn loop are scheduled onto it and waited on.
"""

import asyncio
import concurrent.futures
import logging
import os
import threading
from typing import (
    Any,
    Dict,
    List,
)

from mcp import (
    ClientSession,
    StdioServerParameters,
)
from mcp.client.stdio import stdio_client

from tessera.core.errors import MCPError
from tessera.mcp.config import ServerConfig

logger = logging.getLogger(__name__)


def resolve_env(env: Dict[str, str]) -> Dict[str, str]:
    """Merge *env* into the current environment, expanding ``${VAR}`` references."""
    full_env = os.environ.copy()
    for key, value in env.items():
        if value.startswith("${") and value.endswith("}"):
            full_env[key] = os.environ.get(value[2:-1], "")
        else:
            full_env[key] = value
    return full_env


class MCPServer:
    """One MCP server process plus the client session talking to it."""

    def __init__(
        self,
        config: ServerConfig,
        init_timeout: float = 30.0,
        call_timeout: float | None = None,
    ):
        self.config = config
        self.init_timeout = init_timeout
        self.call_timeout = call_timeout
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._session: ClientSession | None = None
        self._closing: asyncio.Event | None = None
        self._serve_future: concurrent.futures.Future | None = None
        self._ready = threading.Event()
        self._start_error: BaseException | None = None

    @property
    def id(self) -> str:
        """Server identifier from the configuration."""
        return self.config.id

    @property
    def running(self) -> bool:
        """True between a successful ``start`` and ``close``."""
        return self._session is not None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def start(self) -> None:
        """Launch the server process and complete the MCP handshake."""
        if self.running:
            return

        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name=f"mcp-{self.id}", daemon=True
        )
        self._thread.start()
        self._serve_future = asyncio.run_coroutine_threadsafe(self._serve(), self._loop)

        if not self._ready.wait(self.init_timeout):
            self.close()
            raise MCPError(f"MCP server '{self.id}' did not initialize within {self.init_timeout}s")
        if self._start_error is not None:
            error = self._start_error
            self.close()
            raise MCPError(f"failed to start MCP server '{self.id}': {error}") from error
        logger.info("MCP server '%s' started (%s)", self.id, self.config.command)

    async def _serve(self) -> None:
        params = StdioServerParameters(
            command=self.config.command,
            args=self.config.args,
            env=resolve_env(self.config.env),
        )
        self._closing = asyncio.Event()
        try:
            async with stdio_client(params) as (read_stream, write_stream):
                async with ClientSession(read_stream, write_stream) as session:
                    await session.initialize()
                    self._session = session
                    self._ready.set()
                    await self._closing.wait()
        except Exception as exc:  # pylint: disable=broad-except
            if not self._ready.is_set():
                self._start_error = exc
            else:
                logger.warning("MCP server '%s' stopped with an error: %s", self.id, exc)
        finally:
            self._session = None
            self._ready.set()

    def close(self) -> None:
        """Shut the session down, stop the process and the event loop."""
        loop = self._loop
        if loop is None:
            return
        if self._closing is not None:
            loop.call_soon_threadsafe(self._closing.set)
        if self._serve_future is not None:
            try:
                self._serve_future.result(timeout=10)
            except (concurrent.futures.TimeoutError, concurrent.futures.CancelledError):
                logger.warning("MCP server '%s' did not shut down cleanly", self.id)
        loop.call_soon_threadsafe(loop.stop)
        if self._thread is not None:
            self._thread.join(timeout=5)
        loop.close()
        self._loop = None
        self._thread = None
        logger.debug("Closed MCP server '%s'", self.id)

    # ------------------------------------------------------------------ #
    # Calls
    # ------------------------------------------------------------------ #
    def _run(self, coro: Any) -> Any:
        if self._session is None or self._loop is None:
            coro.close()
            raise MCPError(f"MCP server '{self.id}' is not running")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout=self.call_timeout)
        except concurrent.futures.TimeoutError as exc:
            future.cancel()
            raise MCPError(
                f"MCP server '{self.id}' did not answer within {self.call_timeout}s"
            ) from exc

    def list_tools(self) -> List[Any]:
        """Tool descriptors (``mcp.types.Tool``) advertised by the server."""
        session = self._session
        if session is None:
            raise MCPError(f"MCP server '{self.id}' is not running")
        result = self._run(session.list_tools())
        return list(result.tools)

    def call(self, tool_name: str, args: Dict[str, Any]) -> str | None:
        """
        Call *tool_name* with *args* and return its text content.

        Returns None when the tool produced no content.  A result flagged as an error by the
        server is raised as ``MCPError``.
        """
        session = self._session
        if session is None:
            raise MCPError(f"MCP server '{self.id}' is not running")
        logger.debug("Calling tool %s on MCP server %s", tool_name, self.id)
        result = self._run(session.call_tool(tool_name, args))

        if not result.content:
            text = None
        else:
            text = "\n".join(item.text for item in result.content if hasattr(item, "text"))
        if result.isError:
            raise MCPError(text or "tool reported an error")
        return text

"""MCP server configurations and their JSON file on disk."""

import json
import logging
import shlex
from pathlib import Path
from typing import (
    Dict,
    List,
)

from pydantic import (
    BaseModel,
    Field,
    TypeAdapter,
    ValidationError,
)

from tessera.core.errors import MCPError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "mcp_servers.json"


class ServerConfig(BaseModel):
    """How to launch one MCP server over stdio."""

    id: str = Field(..., description="Unique server identifier")
    command: str = Field(..., description="Executable to launch")
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(
        default_factory=dict, description="Extra environment; '${VAR}' values are resolved"
    )


_CONFIG_LIST = TypeAdapter(List[ServerConfig])


def parse_server_spec(spec: str) -> ServerConfig:
    """
    Parse an ``id:command`` string such as ``"fetch:uvx mcp-server-fetch"``.

    The command part is split shell-style into the executable and its arguments.
    """
    server_id, sep, command = spec.partition(":")
    server_id, command = server_id.strip(), command.strip()
    if not sep or not server_id or not command:
        raise ValueError(f"invalid server configuration {spec!r} (expected id:command)")
    parts = shlex.split(command)
    return ServerConfig(id=server_id, command=parts[0], args=parts[1:])


def default_config_path(data_dir: str) -> Path:
    """Location of the config file inside the data directory."""
    return Path(data_dir).expanduser() / CONFIG_FILENAME


def load_configs(path: Path) -> List[ServerConfig]:
    """Read server configs; a missing file means no servers."""
    if not path.exists():
        return []
    try:
        return _CONFIG_LIST.validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as exc:
        raise MCPError(f"invalid MCP configuration in {path}: {exc}") from exc


def save_configs(configs: List[ServerConfig], path: Path) -> None:
    """Write server configs, replacing any entry with the same id."""
    merged: Dict[str, ServerConfig] = {c.id: c for c in load_configs(path)}
    for config in configs:
        merged[config.id] = config
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps([c.model_dump() for c in merged.values()], indent=2), encoding="utf-8"
    )
    logger.info("Saved %d MCP server configurations to %s", len(merged), path)

"""Shell command execution tool."""

import logging
import subprocess

from pydantic import (
    BaseModel,
    Field,
)

from tessera.config import settings
from tessera.core.errors import ToolError
from tessera.tools import (
    ToolInput,
    register_tool,
)

logger = logging.getLogger(__name__)

BASH = "bash"


class BashInput(BaseModel):
    """Arguments for ``bash``."""

    command: str = Field(..., description="The bash command to execute.")


@register_tool(BASH, BashInput, label="Bash", detail_field="command")
def bash(tool_input: ToolInput) -> str:
    """
    Execute a bash command in the working directory and return its combined stdout and stderr.
    Use it to run builds, tests or inspect the environment.
    """
    args = tool_input.decode(BashInput)
    logger.debug("Running command: %s", args.command)
    try:
        proc = subprocess.run(
            ["bash", "-c", args.command],
            capture_output=True,
            text=True,
            timeout=settings.BASH_TIMEOUT,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise ToolError(f"command timed out after {exc.timeout:g}s: {args.command}") from exc

    output = (proc.stdout + proc.stderr).strip()
    if proc.returncode != 0:
        raise ToolError(f"command failed with exit code {proc.returncode}: {output}")
    return output

"""Regex search across the files of the working directory."""

import fnmatch
import os
import re
from pathlib import Path
from typing import List

from pydantic import (
    BaseModel,
    Field,
)

from tessera.core.errors import ToolError
from tessera.tools import (
    ToolInput,
    register_tool,
)
from tessera.tools.files import IGNORED_DIRS

GREP_SEARCH = "grep_search"
MAX_MATCHES = 100


class GrepSearchInput(BaseModel):
    """Arguments for ``grep_search``."""

    pattern: str = Field(..., description="The regular expression to search for.")
    path: str = Field(".", description="Directory or file to search in.")
    case_sensitive: bool = Field(False, description="Match case exactly.")
    file_glob: str | None = Field(
        None, description="Only search files whose name matches this glob, e.g. '*.py'."
    )


def _iter_files(root: Path, file_glob: str | None):
    if root.is_file():
        yield root
        return
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
        for name in sorted(filenames):
            if file_glob and not fnmatch.fnmatch(name, file_glob):
                continue
            yield Path(dirpath) / name


@register_tool(GREP_SEARCH, GrepSearchInput, label="Grep", detail_field="pattern")
def grep_search(tool_input: ToolInput) -> str:
    """
    Search file contents with a regular expression. Returns matching lines as
    'path:line_number:line', at most 100 of them. Use it to find definitions, usages or strings.
    """
    args = tool_input.decode(GrepSearchInput)
    try:
        regex = re.compile(args.pattern, 0 if args.case_sensitive else re.IGNORECASE)
    except re.error as exc:
        raise ToolError(f"invalid pattern {args.pattern!r}: {exc}") from exc

    root = Path(args.path)
    if not root.exists():
        raise ToolError(f"path not found: {args.path}")

    matches: List[str] = []
    for file_path in _iter_files(root, args.file_glob):
        try:
            with file_path.open(encoding="utf-8") as fh:
                for lineno, line in enumerate(fh, start=1):
                    if regex.search(line):
                        matches.append(f"{file_path.as_posix()}:{lineno}:{line.rstrip()}")
                        if len(matches) >= MAX_MATCHES:
                            matches.append(f"... stopped after {MAX_MATCHES} matches")
                            return "\n".join(matches)
        except (UnicodeDecodeError, OSError):
            continue  # binary or unreadable

    if not matches:
        return "No matches found."
    return "\n".join(matches)

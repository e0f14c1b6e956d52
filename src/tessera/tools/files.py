"""File-system tools: read, list and edit files relative to the working directory."""

import json
import logging
import os
from pathlib import Path

from pydantic import (
    BaseModel,
    Field,
)

from tessera.core.errors import ToolError
from tessera.tools import (
    ToolInput,
    register_tool,
)

logger = logging.getLogger(__name__)

READ_FILE = "read_file"
LIST_FILES = "list_files"
EDIT_FILE = "edit_file"

# Directories that are never worth showing to the model
IGNORED_DIRS = frozenset({".git", ".hg", ".svn", "node_modules", "__pycache__", ".venv", "venv"})


class ReadFileInput(BaseModel):
    """Arguments for ``read_file``."""

    path: str = Field(..., description="The relative path of a file in the working directory.")


class ListFilesInput(BaseModel):
    """Arguments for ``list_files``."""

    path: str = Field(
        ".",
        description="Optional relative path to list files from. Defaults to the current directory.",
    )


class EditFileInput(BaseModel):
    """Arguments for ``edit_file``."""

    path: str = Field(..., description="The path to the file")
    old_str: str = Field(
        ...,
        description="Text to search for - must match exactly. Empty to create a new file.",
    )
    new_str: str = Field(..., description="Text to replace old_str with")


@register_tool(READ_FILE, ReadFileInput, label="Read", detail_field="path")
def read_file(tool_input: ToolInput) -> str:
    """
    Read the contents of a given relative file path. Use this when you want to see what's inside
    a file. Do not use this with directory names.
    """
    args = tool_input.decode(ReadFileInput)
    target = Path(args.path)
    if not target.is_file():
        raise ToolError(f"file not found: {args.path}")
    return target.read_text(encoding="utf-8", errors="replace")


@register_tool(LIST_FILES, ListFilesInput, label="List", detail_field="path")
def list_files(tool_input: ToolInput) -> str:
    """
    List files and directories at a given path. If no path is provided, lists files in the
    current directory. Directories end with a trailing slash.
    """
    args = tool_input.decode(ListFilesInput)
    root = Path(args.path or ".")
    if not root.is_dir():
        raise ToolError(f"not a directory: {args.path}")

    entries: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
        rel_dir = Path(dirpath).relative_to(root)
        for name in dirnames:
            entries.append(f"{(rel_dir / name).as_posix()}/")
        for name in sorted(filenames):
            entries.append((rel_dir / name).as_posix())

    return json.dumps(sorted(entries))


@register_tool(EDIT_FILE, EditFileInput, label="Edit", detail_field="path")
def edit_file(tool_input: ToolInput) -> str:
    """
    Make edits to a text file. Replaces every occurrence of 'old_str' with 'new_str' in the given
    file. 'old_str' and 'new_str' MUST be different from each other. If the file specified with
    path doesn't exist, it will be created when 'old_str' is empty.
    """
    args = tool_input.decode(EditFileInput)
    if not args.path or args.old_str == args.new_str:
        raise ToolError("invalid input parameters")

    target = Path(args.path)
    if not target.exists():
        if args.old_str == "":
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(args.new_str, encoding="utf-8")
            logger.info("Created file %s", target)
            return f"Successfully created file {args.path}"
        raise ToolError(f"file not found: {args.path}")

    old_content = target.read_text(encoding="utf-8")
    if args.old_str not in old_content:
        raise ToolError("old_str not found in file")

    target.write_text(old_content.replace(args.old_str, args.new_str), encoding="utf-8")
    return "OK"

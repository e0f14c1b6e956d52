"""Codebase search delegated to a subagent."""

from pydantic import (
    BaseModel,
    Field,
)

from tessera.tools import (
    ToolDefinition,
    input_schema,
    register_definition,
)

FINDER = "finder"

FINDER_DESCRIPTION = """\
Intelligently search the codebase to answer a question. Use it for broad, multi-step searches
("where is the retry policy configured?", "which modules call the store?") instead of running many
grep_search or read_file calls yourself. A subagent with read-only tools (read_file, grep_search,
list_files) explores the code and reports back. Ask a precise question and say what you want in the
answer, e.g. file paths with line numbers.
"""


class FinderInput(BaseModel):
    """Arguments for ``finder``."""

    query: str = Field(..., description="The question the subagent should answer.")


# Answered by the subagent, so there is no local function.
FINDER_DEFINITION = register_definition(
    ToolDefinition(
        name=FINDER,
        description=FINDER_DESCRIPTION.strip(),
        input_schema=input_schema(FinderInput),
        delegating=True,
        label="Finder",
        detail_field="query",
    )
)

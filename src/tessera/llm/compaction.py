"""
History compaction shared by every provider adapter.

Adapters hold a ``HistoryCompactor`` instead of inheriting the logic, so each provider can swap in a
different policy without touching the others.
"""

from typing import List

from tessera.core.schema import (
    Message,
    ToolResultBlock,
)

TRUNCATION_MARKER = "...[TRUNCATED]..."


class HistoryCompactor:
    """Keeps conversation history and oversized tool results under a size ceiling."""

    def summarize_history(self, history: List[Message], threshold: int) -> List[Message]:
        """
        Drop interior messages once the history grows past *threshold*.

        The first (anchor) message is always kept, followed by the most recent *threshold*
        messages in their original order.
        """
        if len(history) <= threshold:
            return history
        return [history[0], *history[len(history) - threshold :]]

    def truncate_message(self, msg: Message, threshold: int) -> Message:
        """
        Shorten every tool result whose content is at least *threshold* characters long.

        The head and tail (``threshold // 2`` characters each) are kept around a marker.  Other
        blocks are left alone, and truncating an already truncated message changes nothing.
        """
        half = threshold // 2
        blocks = []
        changed = False
        for block in msg.content:
            if isinstance(block, ToolResultBlock) and len(block.content) >= threshold:
                content = block.content
                shortened = content[:half] + TRUNCATION_MARKER + content[len(content) - half :]
                block = block.model_copy(update={"content": shortened})
                changed = True
            blocks.append(block)

        if not changed:
            return msg
        return msg.model_copy(update={"content": blocks})

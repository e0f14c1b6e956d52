"""Interactive terminal shell around an orchestrator."""

from __future__ import annotations

import logging
import sys
import threading
from typing import Tuple

from tessera.agent.controller import (
    State,
    StateController,
)
from tessera.agent.orchestrator import Orchestrator
from tessera.common import (
    AnsiColors,
    colored_print,
    colorize,
)
from tessera.core.errors import TesseraError

logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"exit", "quit"}


# ---------------------------------------------------------------------------
# Input / output helpers
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def print_delta(text: str) -> None:
    """Write a streamed fragment as soon as it arrives."""
    sys.stdout.write(colorize(text, AnsiColors.YELLOW))
    sys.stdout.flush()


def render_state(state: State) -> str | None:
    """Text shown for a state snapshot, or None when there is nothing to show."""
    if state.plan is not None:
        return state.plan.render()
    if state.token_count:
        model = f" ({state.model_name})" if state.model_name else ""
        return f"[{state.token_count} tokens{model}]"
    return None


def watch_state(controller: StateController) -> threading.Thread:
    """Print every published snapshot from a daemon thread."""

    def _consume() -> None:
        for state in controller.subscribe():
            text = render_state(state)
            if text:
                colored_print(f"\n{text}", AnsiColors.GREY)

    thread = threading.Thread(target=_consume, name="state-watcher", daemon=True)
    thread.start()
    return thread


# ---------------------------------------------------------------------------
# CLI loop
# ---------------------------------------------------------------------------
def run_cli(orchestrator: Orchestrator, controller: StateController) -> None:
    """Read user messages and run one turn for each until the user leaves."""
    watch_state(controller)

    colored_print(
        f"\nTessera [{orchestrator.llm.model_name}] - conversation {orchestrator.conversation.id}",
        AnsiColors.GREEN,
    )
    colored_print("Type 'exit' or 'quit' (or Ctrl+C) to exit", AnsiColors.GREEN)
    while True:
        colored_print("\nYou: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if not user_msg:
            continue
        if user_msg.lower() in EXIT_COMMANDS:
            break

        print()
        try:
            orchestrator.run(user_msg, print_delta)
        except TesseraError as exc:
            logger.debug("Turn failed", exc_info=True)
            colored_print(f"\nError: {exc}", AnsiColors.RED)
        except KeyboardInterrupt:
            colored_print("\nInterrupted", AnsiColors.RED)
        print()

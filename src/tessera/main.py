"""
Tessera entry point.

This file handles startup concerns (arg-parsing, env setup, logging), wires the store, LLM clients,
toolboxes, MCP servers and orchestrator together, and launches the interactive shell.
"""

import argparse
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from tessera.agent.controller import StateController
from tessera.agent.orchestrator import (
    Orchestrator,
    OrchestratorConfig,
)
from tessera.agent.subagent import Subagent
from tessera.client.cli import run_cli
from tessera.common import (
    AnsiColors,
    colored_print,
)
from tessera.config import settings
from tessera.core.errors import (
    NotFoundError,
    TesseraError,
)
from tessera.core.schema import Plan
from tessera.llm import (
    default_model,
    list_models,
    list_providers,
    load_client,
)
from tessera.mcp.config import (
    default_config_path,
    load_configs,
    parse_server_spec,
    save_configs,
)
from tessera.mcp.proxy import MCPToolProxy
from tessera.mcp.server import MCPServer
from tessera.store.base import ConversationStore
from tessera.store.http import HTTPStore
from tessera.store.memory import InMemoryStore
from tessera.tools import ToolBox
from tessera.tools.files import (
    LIST_FILES,
    READ_FILE,
)
from tessera.tools.search import GREP_SEARCH

logger = logging.getLogger(__name__)

SUBAGENT_TOOLS = (READ_FILE, GREP_SEARCH, LIST_FILES)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stderr,
    )
    # SDK and transport loggers are noisy at INFO
    for name in ("httpx", "anthropic", "openai", "google_genai", "mcp"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _api_key(provider: str) -> str | None:
    if provider == "anthropic":
        return settings.ANTHROPIC_API_KEY
    if provider == "openai":
        return settings.OPENAI_API_KEY
    if provider == "gemini":
        return settings.GEMINI_API_KEY
    return None


def _build_store() -> ConversationStore:
    if settings.STORE_URL:
        logger.info("Using conversation store at %s", settings.STORE_URL)
        return HTTPStore(settings.STORE_URL)
    logger.info("No STORE_URL configured; conversations are kept in memory")
    return InMemoryStore()


def _print_models() -> None:
    for provider in list_providers():
        print(f"{provider} (default: {default_model(provider)})")
        for model in list_models(provider):
            print(f"  {model}")


def _timestamp(value: datetime | None) -> str:
    return value.isoformat(timespec="seconds") if value else "-"


def _print_conversations(store: ConversationStore) -> None:
    rows = store.list_conversations()
    if not rows:
        print("No conversations found.")
        return
    print(f"{'ID':<36}  {'Created':<25}  {'Last Message':<25}  Messages")
    for row in rows:
        print(
            f"{row.id:<36}  {_timestamp(row.created_at):<25}  "
            f"{_timestamp(row.latest_message_at):<25}  {row.message_count}"
        )


def _print_plans(store: ConversationStore) -> None:
    rows = store.list_plans()
    if not rows:
        print("No plans found.")
        return
    print(f"{'ID':<36}  {'Conversation':<36}  Steps")
    for row in rows:
        print(f"{row.id:<36}  {row.conversation_id:<36}  {row.done_count}/{row.step_count}")


def _delete_plans(store: ConversationStore, conversation_ids: list[str]) -> None:
    failed = False
    for conversation_id, error in store.delete_plans(conversation_ids).items():
        if error is None:
            colored_print(f"Deleted plan for conversation {conversation_id}", AnsiColors.GREEN)
        else:
            failed = True
            colored_print(f"Could not delete plan for {conversation_id}: {error}", AnsiColors.RED)
    if failed:
        sys.exit(1)


def _load_plan(store: ConversationStore, conversation_id: str) -> Plan | None:
    try:
        return store.get_plan(conversation_id)
    except NotFoundError:
        return None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Tessera coding agent")
    parser.add_argument(
        "--provider",
        choices=list_providers(),
        type=str.lower,
        default=settings.PROVIDER,
        help="LLM provider (default from env: %(default)s)",
    )
    parser.add_argument("--model", default=settings.MODEL, help="Model for the main agent")
    parser.add_argument(
        "--max-tokens",
        type=int,
        default=settings.MAX_TOKENS,
        help="Maximum tokens per response (default: %(default)s)",
    )
    conversation = parser.add_mutually_exclusive_group()
    conversation.add_argument("--conversation-id", help="Continue the conversation with this id")
    conversation.add_argument(
        "--resume", action="store_true", help="Continue the most recent conversation"
    )
    parser.add_argument(
        "--no-stream",
        dest="streaming",
        action="store_false",
        default=settings.STREAMING,
        help="Wait for complete responses instead of streaming them",
    )
    parser.add_argument(
        "--mcp-server",
        action="append",
        default=[],
        metavar="ID:COMMAND",
        help="Add an MCP server, e.g. 'fetch:uvx mcp-server-fetch' (saved for later runs)",
    )
    parser.add_argument(
        "--list-models", action="store_true", help="List known models per provider and exit"
    )
    store_commands = parser.add_mutually_exclusive_group()
    store_commands.add_argument(
        "--list-conversations",
        action="store_true",
        help="List stored conversations (id, creation, last activity, message count) and exit",
    )
    store_commands.add_argument(
        "--list-plans", action="store_true", help="List stored plans and exit"
    )
    store_commands.add_argument(
        "--delete-plan",
        nargs="+",
        metavar="CONVERSATION_ID",
        help="Delete the plans of the given conversations and exit",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    return parser


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the Tessera application.

    Parses the command line, initializes logging, builds an orchestrator for a new or resumed
    conversation and runs the interactive shell until the user exits.  The listing and deletion
    flags act on the store and exit without starting a session.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.list_models:
        _print_models()
        return

    # Override log level setting with command-line argument
    settings.LOG_LEVEL = args.log_level
    _init_logging(settings.LOG_LEVEL)

    # Ensure the data directory exists and is writable
    data_dir = Path(settings.DATA_DIR).expanduser()
    data_dir.mkdir(parents=True, exist_ok=True)
    if not data_dir.is_dir() or not os.access(data_dir, os.W_OK):
        logger.error("Data directory is not writable: %s", data_dir)
        sys.exit(1)

    config_path = (
        Path(settings.MCP_CONFIG_PATH).expanduser()
        if settings.MCP_CONFIG_PATH
        else default_config_path(settings.DATA_DIR)
    )
    try:
        new_servers = [parse_server_spec(spec) for spec in args.mcp_server]
    except ValueError as exc:
        parser.error(str(exc))

    logger.info("Starting Tessera [%s]", args.provider)
    logger.debug(
        "Settings: %s",
        settings.model_dump(exclude={"ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY"}),
    )

    store = _build_store()
    controller = StateController()
    proxy: MCPToolProxy | None = None

    try:
        if args.list_conversations:
            _print_conversations(store)
            return
        if args.list_plans:
            _print_plans(store)
            return
        if args.delete_plan:
            _delete_plans(store, args.delete_plan)
            return

        if new_servers:
            save_configs(new_servers, config_path)
        proxy = MCPToolProxy(
            load_configs(config_path),
            server_factory=lambda cfg: MCPServer(
                cfg,
                init_timeout=settings.MCP_INIT_TIMEOUT,
                call_timeout=settings.MCP_CALL_TIMEOUT,
            ),
        )

        if args.resume:
            conversation = store.get_conversation(store.latest_conversation_id())
        elif args.conversation_id:
            conversation = store.get_conversation(args.conversation_id)
        else:
            conversation = store.create_conversation()

        llm = load_client(
            args.provider,
            model=args.model,
            max_tokens=args.max_tokens,
            api_key=_api_key(args.provider),
        )
        sub_llm = load_client(
            args.provider,
            model=settings.SUBAGENT_MODEL,
            max_tokens=args.max_tokens,
            subagent=True,
            api_key=_api_key(args.provider),
        )
        subagent = Subagent(sub_llm, ToolBox.from_registry(*SUBAGENT_TOOLS))

        proxy.register_servers()
        orchestrator = Orchestrator(
            OrchestratorConfig(
                llm=llm,
                conversation=conversation,
                toolbox=ToolBox.from_registry(),
                store=store,
                controller=controller,
                mcp=proxy,
                subagent=subagent,
                plan=_load_plan(store, conversation.id),
                streaming=args.streaming,
                history_threshold=settings.HISTORY_THRESHOLD,
                subagent_truncate_threshold=settings.SUBAGENT_TRUNCATE_THRESHOLD,
            )
        )
        run_cli(orchestrator, controller)
    except TesseraError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    finally:
        if proxy is not None:
            proxy.shutdown()
        if isinstance(store, HTTPStore):
            store.close()


if __name__ == "__main__":
    main()

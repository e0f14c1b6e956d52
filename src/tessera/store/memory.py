"""In-process store used when no store service is configured, and in tests."""

import logging
import threading
from typing import (
    Dict,
    List,
)

from tessera.core.errors import NotFoundError
from tessera.core.schema import (
    Conversation,
    ConversationMetadata,
    Plan,
    PlanMetadata,
)
from tessera.store.base import ConversationStore

logger = logging.getLogger(__name__)


class InMemoryStore(ConversationStore):
    """
    Dict-backed store.

    Objects are deep-copied on the way in and out so callers never share state with the store,
    the same isolation a remote store gives.
    """

    def __init__(self) -> None:
        self._conversations: Dict[str, Conversation] = {}
        self._plans: Dict[str, Plan] = {}  # keyed by conversation id
        self._lock = threading.Lock()

    def create_conversation(self) -> Conversation:
        conv = Conversation()
        with self._lock:
            self._conversations[conv.id] = conv.model_copy(deep=True)
        logger.debug("Created conversation %s", conv.id)
        return conv

    def get_conversation(self, conversation_id: str) -> Conversation:
        with self._lock:
            conv = self._conversations.get(conversation_id)
            if conv is None:
                raise NotFoundError(f"conversation '{conversation_id}' not found")
            return conv.model_copy(deep=True)

    def save_conversation(self, conversation: Conversation) -> None:
        with self._lock:
            self._conversations[conversation.id] = conversation.model_copy(deep=True)

    def update_token_count(self, conversation_id: str, token_count: int) -> None:
        with self._lock:
            conv = self._conversations.get(conversation_id)
            if conv is None:
                raise NotFoundError(f"conversation '{conversation_id}' not found")
            conv.token_count = token_count

    def list_conversations(self) -> List[ConversationMetadata]:
        with self._lock:
            rows = [
                ConversationMetadata(
                    id=conv.id,
                    created_at=conv.created_at,
                    message_count=len(conv.messages),
                    latest_message_at=(
                        conv.messages[-1].created_at if conv.messages else conv.created_at
                    ),
                )
                for conv in self._conversations.values()
            ]
        return sorted(rows, key=lambda row: row.latest_message_at or row.created_at, reverse=True)

    def get_plan(self, conversation_id: str) -> Plan:
        with self._lock:
            plan = self._plans.get(conversation_id)
            if plan is None:
                raise NotFoundError(f"plan for conversation '{conversation_id}' not found")
            return plan.model_copy(deep=True)

    def create_plan(self, conversation_id: str) -> Plan:
        plan = Plan(conversation_id=conversation_id)
        with self._lock:
            self._plans[conversation_id] = plan.model_copy(deep=True)
        logger.debug("Created plan %s for conversation %s", plan.id, conversation_id)
        return plan

    def save_plan(self, plan: Plan) -> None:
        with self._lock:
            self._plans[plan.conversation_id] = plan.model_copy(deep=True)

    def list_plans(self) -> List[PlanMetadata]:
        with self._lock:
            return [PlanMetadata.of(plan) for plan in self._plans.values()]

    def delete_plan(self, conversation_id: str) -> None:
        with self._lock:
            if self._plans.pop(conversation_id, None) is None:
                raise NotFoundError(f"plan for conversation '{conversation_id}' not found")
        logger.debug("Deleted plan for conversation %s", conversation_id)

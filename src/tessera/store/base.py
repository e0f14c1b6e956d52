"""
Conversation/plan store interface.

The engine only needs this narrow surface.  Every method raises ``NotFoundError`` when the target
does not exist and ``StoreError`` for any other failure.
"""

from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Dict,
    Iterable,
    List,
    Optional,
)

from tessera.core.errors import (
    NotFoundError,
    StoreError,
)
from tessera.core.schema import (
    Conversation,
    ConversationMetadata,
    Plan,
    PlanMetadata,
)


class ConversationStore(ABC):
    """Persistence for conversations and their plans."""

    @abstractmethod
    def create_conversation(self) -> Conversation:
        """Create and persist an empty conversation."""

    @abstractmethod
    def get_conversation(self, conversation_id: str) -> Conversation:
        """Load a conversation with all of its messages."""

    @abstractmethod
    def save_conversation(self, conversation: Conversation) -> None:
        """Persist the conversation and its full message list."""

    @abstractmethod
    def update_token_count(self, conversation_id: str, token_count: int) -> None:
        """Record the latest token count of a conversation."""

    @abstractmethod
    def list_conversations(self) -> List[ConversationMetadata]:
        """Summaries of every conversation, most recently active first."""

    @abstractmethod
    def get_plan(self, conversation_id: str) -> Plan:
        """Load the plan attached to a conversation."""

    @abstractmethod
    def create_plan(self, conversation_id: str) -> Plan:
        """Create and persist an empty plan for a conversation."""

    @abstractmethod
    def save_plan(self, plan: Plan) -> None:
        """Persist a plan and its steps."""

    @abstractmethod
    def list_plans(self) -> List[PlanMetadata]:
        """Summaries of every stored plan."""

    @abstractmethod
    def delete_plan(self, conversation_id: str) -> None:
        """Delete the plan attached to a conversation."""

    def latest_conversation_id(self) -> str:
        """Id of the most recently active conversation."""
        conversations = self.list_conversations()
        if not conversations:
            raise NotFoundError("no conversations found")
        return conversations[0].id

    def delete_plans(self, conversation_ids: Iterable[str]) -> Dict[str, Optional[str]]:
        """
        Delete several plans, continuing past failures.

        Returns a mapping of conversation id to an error message, or None when the plan was deleted.
        """
        results: Dict[str, Optional[str]] = {}
        for conversation_id in conversation_ids:
            try:
                self.delete_plan(conversation_id)
            except StoreError as exc:
                results[conversation_id] = str(exc)
            else:
                results[conversation_id] = None
        return results

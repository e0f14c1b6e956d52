"""
HTTP client for a remote conversation/plan service.

Endpoints (JSON bodies):
- **POST /conversations** - create, returns ``{"id": ...}``
- **GET /conversations** - list metadata
- **GET/PUT/PATCH /conversations/{id}** - load, save, update ``token_count``
- **POST /plans** - create for ``{"conversation_id": ...}``, returns ``{"id": ...}``
- **GET /plans** - list metadata
- **GET/PUT/DELETE /plans/{conversation_id}** - load, save, delete

Plans are addressed by the conversation they belong to.
"""

import logging
from typing import (
    Any,
    List,
)

import httpx

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
from tessera.store.base import ConversationStore

logger = logging.getLogger(__name__)

DEFAULT_STORE_URL = "http://localhost:11435"


class HTTPStore(ConversationStore):
    """``ConversationStore`` backed by the store service's REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url or DEFAULT_STORE_URL
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        """Release the underlying connection pool."""
        self._client.close()

    def __enter__(self) -> "HTTPStore":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _request(self, method: str, path: str, body: Any = None) -> httpx.Response:
        try:
            response = self._client.request(method, path, json=body)
        except httpx.HTTPError as exc:
            raise StoreError(f"request {method} {path} failed: {exc}") from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            raise NotFoundError(f"{path} not found")
        if response.status_code >= 400:
            raise StoreError(f"server error ({response.status_code}): {response.text}")
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise StoreError(f"failed to decode response: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Conversations
    # ------------------------------------------------------------------ #
    def create_conversation(self) -> Conversation:
        data = self._json(self._request("POST", "/conversations"))
        return Conversation(id=data["id"])

    def get_conversation(self, conversation_id: str) -> Conversation:
        data = self._json(self._request("GET", f"/conversations/{conversation_id}"))
        return Conversation.model_validate(data)

    def save_conversation(self, conversation: Conversation) -> None:
        self._request(
            "PUT", f"/conversations/{conversation.id}", conversation.model_dump(mode="json")
        )
        logger.debug(
            "Saved conversation %s (%d messages)", conversation.id, len(conversation.messages)
        )

    def update_token_count(self, conversation_id: str, token_count: int) -> None:
        self._request("PATCH", f"/conversations/{conversation_id}", {"token_count": token_count})

    def list_conversations(self) -> List[ConversationMetadata]:
        data = self._json(self._request("GET", "/conversations"))
        return [ConversationMetadata.model_validate(row) for row in data or []]

    # ------------------------------------------------------------------ #
    # Plans
    # ------------------------------------------------------------------ #
    def get_plan(self, conversation_id: str) -> Plan:
        data = self._json(self._request("GET", f"/plans/{conversation_id}"))
        return Plan.model_validate(data)

    def create_plan(self, conversation_id: str) -> Plan:
        data = self._json(self._request("POST", "/plans", {"conversation_id": conversation_id}))
        return Plan(id=data["id"], conversation_id=conversation_id)

    def save_plan(self, plan: Plan) -> None:
        self._request("PUT", f"/plans/{plan.conversation_id}", plan.model_dump(mode="json"))

    def list_plans(self) -> List[PlanMetadata]:
        data = self._json(self._request("GET", "/plans"))
        return [PlanMetadata.model_validate(row) for row in data or []]

    def delete_plan(self, conversation_id: str) -> None:
        self._request("DELETE", f"/plans/{conversation_id}")
        logger.debug("Deleted plan for conversation %s", conversation_id)

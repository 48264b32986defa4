"""Domain service interfaces (ports).

These protocols define the contracts that infrastructure implementations
must satisfy.  The application layer depends on these abstractions,
not on concrete classes.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from mealprep_assistant.domain.models import (
    ChatMessage,
    Conversation,
    ConversationSummary,
    Intent,
    Message,
    SearchResult,
    SearchType,
    WebhookResult,
)

# ---------------------------------------------------------------------------
# Model providers
# ---------------------------------------------------------------------------


@runtime_checkable
class IEmbeddingClient(Protocol):
    """Turns text into a fixed-dimension vector.

    Implementations: OpenAIEmbeddingClient.
    """

    async def embed(self, text: str) -> list[float]: ...


@runtime_checkable
class IChatCompletionClient(Protocol):
    """Single-shot and history-aware text generation.

    Implementations: ChatCompletionClient (pydantic-ai over an OpenAI-compatible API).
    """

    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        *,
        model: str,
        images: list[str] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> str: ...

    async def complete_with_history(
        self,
        system_prompt: str,
        history: list[ChatMessage],
        user_message: str,
        *,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> str: ...

    async def complete_json(
        self,
        system_prompt: str,
        user_message: str,
        *,
        model: str,
        images: list[str] | None = None,
        temperature: float = 0.1,
        max_tokens: int = 500,
    ) -> dict[str, Any]: ...


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


@runtime_checkable
class IRecipeSearch(Protocol):
    """Interface for recipe retrieval.

    Implementations: HybridRetrievalService (sqlite-vec + FTS5).
    """

    async def search(
        self,
        query: str,
        user_id: str | None = None,
        limit: int = 10,
        search_type: SearchType = SearchType.HYBRID,
    ) -> list[SearchResult]: ...


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


@runtime_checkable
class IWebhookGateway(Protocol):
    """Interface for the external workflow endpoint.

    Implementations: WebhookGateway (httpx).
    """

    @property
    def configured(self) -> bool: ...

    async def dispatch(
        self,
        intent: Intent,
        data: dict[str, Any],
        *,
        user: dict[str, Any] | None,
        apology: str,
        metadata: dict[str, Any] | None = None,
    ) -> WebhookResult: ...


# ---------------------------------------------------------------------------
# Conversation Store
# ---------------------------------------------------------------------------


@runtime_checkable
class IConversationStore(Protocol):
    """Interface for conversation persistence.

    Implementations: ConversationStore (SQLite-backed).
    """

    def connect(self) -> None: ...

    def close(self) -> None: ...

    def find_latest_conversation(self, user_id: str, session_id: str) -> Conversation | None: ...

    def create_conversation(
        self,
        user_id: str,
        session_id: str,
        title: str,
        selected_intent: str | None = None,
        metadata: dict | None = None,
    ) -> Conversation: ...

    def set_selected_intent(self, conversation_id: str, intent: str) -> None: ...

    def get_conversation(self, conversation_id: str, user_id: str) -> Conversation | None: ...

    def save_message(
        self,
        conversation_id: str,
        sender: str,
        content: str,
        message_type: str = "text",
        metadata: dict | None = None,
    ) -> Message: ...

    def get_recent_messages(self, conversation_id: str, limit: int) -> list[Message]: ...

    def get_messages(self, conversation_id: str, user_id: str) -> list[Message]: ...

    def list_conversations(self, user_id: str, limit: int = 50) -> list[ConversationSummary]: ...

    def delete_conversation(self, conversation_id: str, user_id: str) -> bool: ...

    def delete_all_conversations(self, user_id: str) -> int: ...

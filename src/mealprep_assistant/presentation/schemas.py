"""HTTP request/response schemas (Pydantic models) for the REST API.

Chat and history payloads use camelCase on the wire, matching the web
client.  Search result items keep their snake_case score fields.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mealprep_assistant.domain.models import (
    ChatTurnResult,
    ConversationSummary,
    Intent,
    Message,
    SearchResult,
    SearchType,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class ChatMessageRequest(_CamelModel):
    """Request body for POST /chat/message.

    The user is taken from the JWT, never from the body.
    """

    message: str = Field(default="", description="User text; may be empty when images are sent")
    images: list[str] = Field(
        default_factory=list,
        max_length=10,
        description="Image URLs or data: URIs",
    )
    session_id: str | None = Field(default=None, description="Client session key")
    intent: Intent | None = Field(default=None, description="Manual intent override")
    context: dict[str, Any] | None = Field(default=None, description="Free-form client context")


class AssistantMessage(_CamelModel):
    id: str
    content: str
    sender: str
    timestamp: str


class ChatMessageResponse(_CamelModel):
    """Response body from POST /chat/message."""

    message: str = "Message processed successfully"
    response: AssistantMessage
    recipe: dict[str, Any] | None = None
    conversation_id: str
    session_id: str
    intent_metadata: dict[str, Any]

    @classmethod
    def from_turn(cls, turn: ChatTurnResult) -> ChatMessageResponse:
        return cls(
            response=AssistantMessage(
                id=turn.message.id,
                content=turn.message.content,
                sender=turn.message.sender,
                timestamp=turn.message.created_at,
            ),
            recipe=turn.recipe,
            conversation_id=turn.conversation_id,
            session_id=turn.session_id,
            intent_metadata=turn.intent_metadata,
        )


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class HistoryMessage(_CamelModel):
    id: str
    content: str
    sender: str
    type: str
    timestamp: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_message(cls, m: Message) -> HistoryMessage:
        return cls(
            id=m.id,
            content=m.content,
            sender=m.sender,
            type=m.message_type,
            timestamp=m.created_at,
            metadata=m.metadata,
        )


class MessagesResponse(_CamelModel):
    conversation_id: str
    messages: list[HistoryMessage]


class ConversationItem(_CamelModel):
    id: str
    title: str
    session_id: str
    selected_intent: str | None
    created_at: str
    updated_at: str
    last_message_at: str | None
    message_count: int

    @classmethod
    def from_summary(cls, s: ConversationSummary) -> ConversationItem:
        return cls(
            id=s.id,
            title=s.title,
            session_id=s.session_id,
            selected_intent=s.selected_intent,
            created_at=s.created_at,
            updated_at=s.updated_at,
            last_message_at=s.last_message_at,
            message_count=s.message_count,
        )


class ConversationsResponse(_CamelModel):
    conversations: list[ConversationItem]


class DeleteResponse(_CamelModel):
    message: str
    deleted: int


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class SearchRequest(_CamelModel):
    """Request body for POST /search."""

    query: str = Field(min_length=1, description="Free-text query")
    user_id: str | None = Field(
        default=None,
        description="Owner to search for; honoured only with a valid X-Internal-Key",
    )
    limit: int = Field(default=10, ge=1, le=50)
    search_type: SearchType = Field(default=SearchType.HYBRID)


class SearchResultItem(BaseModel):
    id: str
    title: str
    description: str | None
    ingredients: list
    instructions: list
    similarity_score: float
    rank_score: float
    combined_score: float
    searchable_text: str

    @classmethod
    def from_result(cls, r: SearchResult) -> SearchResultItem:
        return cls(
            id=r.recipe_id,
            title=r.title,
            description=r.description,
            ingredients=r.ingredients,
            instructions=r.instructions,
            similarity_score=r.similarity_score,
            rank_score=r.rank_score,
            combined_score=r.combined_score,
            searchable_text=r.searchable_text,
        )


class SearchResponse(_CamelModel):
    results: list[SearchResultItem]
    total: int
    search_type: SearchType
    query: str


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(_CamelModel):
    status: str
    webhook_enabled: bool
    webhook_url_configured: bool
    rag_backend: str

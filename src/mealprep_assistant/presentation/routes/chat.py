"""Chat routes: send a message, read and delete history, health."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from loguru import logger

from mealprep_assistant.application.exceptions import ConversationNotFoundError, EmptyMessageError
from mealprep_assistant.application.use_cases.message_router import MessageRouter
from mealprep_assistant.infrastructure.conversation_store import ConversationStore
from mealprep_assistant.presentation.auth import AuthenticatedUser, get_current_user
from mealprep_assistant.presentation.schemas import (
    ChatMessageRequest,
    ChatMessageResponse,
    ConversationItem,
    ConversationsResponse,
    DeleteResponse,
    HealthResponse,
    HistoryMessage,
    MessagesResponse,
)

router = APIRouter(tags=["chat"])


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse)
async def health(raw_request: Request):
    """Liveness check plus the routing configuration clients care about."""
    settings = raw_request.app.state.settings
    return HealthResponse(
        status="ok",
        webhook_enabled=settings.webhook_enabled,
        webhook_url_configured=bool(settings.n8n_webhook_url),
        rag_backend=settings.rag_backend,
    )


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@router.post("/chat/message", response_model=ChatMessageResponse)
async def send_message(
    request: ChatMessageRequest,
    raw_request: Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Route one chat message and return the assistant's reply.

    Handler failures come back as an apology in a 200 response; only an
    empty message (400) or a missing identity (401) fail the request.
    """
    message_router: MessageRouter = raw_request.app.state.router

    logger.info(
        "POST /chat/message | user={} session={} images={} msg={}",
        current_user.user_id,
        request.session_id,
        len(request.images),
        request.message[:60],
    )

    try:
        turn = await message_router.handle_message(
            current_user.user_id,
            request.message,
            request.images,
            request.session_id,
            request.intent,
            request.context,
            user_info=current_user.as_webhook_user(),
        )
    except EmptyMessageError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return ChatMessageResponse.from_turn(turn)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@router.get("/chat/history", response_model=MessagesResponse | ConversationsResponse)
async def get_history(
    raw_request: Request,
    conversation_id: str | None = Query(default=None, alias="conversationId"),
    limit: int = Query(default=50, ge=1, le=200),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Messages of one conversation, or the caller's conversation list."""
    store: ConversationStore = raw_request.app.state.store

    if conversation_id:
        try:
            messages = store.get_messages(conversation_id, current_user.user_id)
        except ConversationNotFoundError:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return MessagesResponse(
            conversation_id=conversation_id,
            messages=[HistoryMessage.from_message(m) for m in messages],
        )

    summaries = store.list_conversations(current_user.user_id, limit=limit)
    return ConversationsResponse(conversations=[ConversationItem.from_summary(s) for s in summaries])


@router.delete("/chat/history", response_model=DeleteResponse)
async def delete_history(
    raw_request: Request,
    conversation_id: str | None = Query(default=None, alias="conversationId"),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Delete one conversation, or every conversation the caller owns."""
    store: ConversationStore = raw_request.app.state.store

    if conversation_id:
        if not store.delete_conversation(conversation_id, current_user.user_id):
            raise HTTPException(status_code=404, detail="Conversation not found")
        logger.info("DELETE /chat/history | user={} conversation={}", current_user.user_id, conversation_id)
        return DeleteResponse(message="Conversation deleted", deleted=1)

    deleted = store.delete_all_conversations(current_user.user_id)
    return DeleteResponse(message="All conversations deleted", deleted=deleted)

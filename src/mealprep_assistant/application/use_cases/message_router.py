"""Message router: the single entry point for a chat turn.

Steps, in order:

1. reject a turn with neither text nor images;
2. resolve the conversation for (user, session key), creating it if needed;
3. persist the user message before any AI call;
4. resolve the routing intent (manual override or classifier);
5. run exactly one handler;
6. persist the assistant reply with routing metadata;
7. return the response envelope.

Everything after step 3 is recovered locally: a failing handler becomes an
apology message, so every turn ends with a stored assistant reply.
"""

from __future__ import annotations

import time
from typing import Any, Literal, assert_never

from loguru import logger

from mealprep_assistant.application.exceptions import EmptyMessageError
from mealprep_assistant.application.use_cases.general_chat import GeneralChatHandler
from mealprep_assistant.application.use_cases.intent_classifier import IntentClassifier
from mealprep_assistant.application.use_cases.recipe_extractor import (
    RecipeExtractor,
    parse_recipe_payload,
    reply_text,
)
from mealprep_assistant.application.use_cases.recipe_search import RecipeSearchHandler
from mealprep_assistant.domain.models import (
    ChatTurnResult,
    Conversation,
    Intent,
    IntentSource,
    Message,
    Recipe,
)
from mealprep_assistant.domain.protocols import IConversationStore, IWebhookGateway

HANDLER_APOLOGY = (
    "I'm sorry, but I'm having trouble connecting to my AI service right now. "
    "Please try again in a moment."
)
EXTRACTION_WEBHOOK_APOLOGY = "I had trouble extracting that recipe. Please try again in a moment."
IMAGES_ONLY = "[Images only]"
DEFAULT_TITLE = "New conversation"
TITLE_LENGTH = 50

ExtractionBackend = Literal["direct", "webhook"]


def conversation_title(message: str) -> str:
    if not message:
        return DEFAULT_TITLE
    if len(message) > TITLE_LENGTH:
        return message[:TITLE_LENGTH] + "..."
    return message


def resolve_session_id(session_id: str | None, context: dict[str, Any] | None) -> str:
    if session_id:
        return session_id
    from_context = (context or {}).get("sessionId")
    if isinstance(from_context, str) and from_context:
        return from_context
    return f"session-{int(time.time() * 1000)}"


class MessageRouter:
    """Routes one chat turn to the extractor, recipe search or general chat."""

    def __init__(
        self,
        store: IConversationStore,
        classifier: IntentClassifier,
        extractor: RecipeExtractor,
        chat: GeneralChatHandler,
        search: RecipeSearchHandler,
        gateway: IWebhookGateway,
        *,
        extraction_backend: ExtractionBackend = "direct",
    ) -> None:
        self.store = store
        self.classifier = classifier
        self.extractor = extractor
        self.chat = chat
        self.search = search
        self.gateway = gateway
        self.extraction_backend = extraction_backend

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def handle_message(
        self,
        user_id: str,
        message: str | None,
        images: list[str] | None = None,
        session_id: str | None = None,
        manual_intent: Intent | None = None,
        context: dict[str, Any] | None = None,
        *,
        user_info: dict[str, Any] | None = None,
    ) -> ChatTurnResult:
        """Run one chat turn end to end.

        Args:
            user_id: Owner of the conversation.
            message: User text; may be empty when images are attached.
            images: Image URLs or ``data:`` URIs.
            session_id: Client session key; falls back to ``context["sessionId"]``
                and then to a generated key.
            manual_intent: Skip classification and route to this intent.
            context: Free-form client context, forwarded to the webhook.
            user_info: ``{id, email, name}`` forwarded to the webhook.

        Raises:
            EmptyMessageError: If there is neither text nor an image.
        """
        text = (message or "").strip()
        images = images or []
        if not text and not images:
            raise EmptyMessageError("Message or images are required")

        session = resolve_session_id(session_id, context)
        conversation = self._resolve_conversation(user_id, session, text, manual_intent)

        user_message = self.store.save_message(
            conversation.id,
            "user",
            text or IMAGES_ONLY,
            "text",
            {"images": len(images), "hasImages": bool(images)},
        )

        intent, intent_metadata = await self._resolve_intent(text, images, manual_intent)

        t0 = time.perf_counter()
        recipe: dict | None = None
        handler_fallback: str | None = None
        try:
            match intent:
                case Intent.RECIPE_EXTRACTION:
                    content, extracted = await self._extract(
                        text, images, session, conversation, user_message, context, user_info
                    )
                    if extracted is not None:
                        recipe = extracted.model_dump(by_alias=True, exclude_none=True)
                case Intent.RAG_SEARCH:
                    reply = await self.search.respond(
                        text,
                        user_id=user_id,
                        webhook_data=self._webhook_data(
                            text, images, intent, session, conversation, user_message, context
                        ),
                        user_info=user_info,
                    )
                    content = reply.text
                    if reply.webhook_failure is not None:
                        handler_fallback = reply.webhook_failure.value
                case Intent.GENERAL_CHAT:
                    chat_reply = await self.chat.respond(
                        text or IMAGES_ONLY, conversation.id, exclude_message_id=user_message.id
                    )
                    content = chat_reply.text
                    if chat_reply.fallback is not None:
                        handler_fallback = chat_reply.fallback.value
                case _:
                    assert_never(intent)
        except Exception:
            logger.exception("Handler for {} failed, replying with apology", intent)
            content = HANDLER_APOLOGY
            recipe = None
            handler_fallback = "handler_error"
        routing_ms = int((time.perf_counter() - t0) * 1000)

        metadata: dict[str, Any] = {**intent_metadata, "routingDuration": routing_ms}
        if recipe is not None:
            metadata["recipe"] = recipe
        if handler_fallback is not None:
            metadata["handlerFallback"] = handler_fallback

        assistant_message = self.store.save_message(
            conversation.id,
            "assistant",
            content,
            "recipe" if recipe is not None else "text",
            metadata,
        )

        logger.info(
            "Chat turn | user={} conversation={} intent={} source={} latency={}ms",
            user_id,
            conversation.id,
            intent,
            intent_metadata["source"],
            routing_ms,
        )

        return ChatTurnResult(
            message=assistant_message,
            conversation_id=conversation.id,
            session_id=session,
            intent_metadata=intent_metadata,
            recipe=recipe,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _resolve_conversation(
        self, user_id: str, session: str, text: str, manual_intent: Intent | None
    ) -> Conversation:
        # Last-created wins; concurrent first messages may create two rows.
        conversation = self.store.find_latest_conversation(user_id, session)
        if conversation is None:
            return self.store.create_conversation(
                user_id,
                session,
                conversation_title(text),
                manual_intent.value if manual_intent else None,
            )
        if manual_intent is not None and conversation.selected_intent != manual_intent.value:
            self.store.set_selected_intent(conversation.id, manual_intent.value)
            conversation.selected_intent = manual_intent.value
        return conversation

    async def _resolve_intent(
        self, text: str, images: list[str], manual_intent: Intent | None
    ) -> tuple[Intent, dict[str, Any]]:
        if manual_intent is not None:
            return manual_intent, {"source": IntentSource.MANUAL.value, "intent": manual_intent.value}

        result = await self.classifier.classify(text, images)
        metadata: dict[str, Any] = {
            "source": IntentSource.AI.value,
            "detectedIntent": result.intent.value,
            "reason": result.reason,
            "confidence": result.confidence,
        }
        if result.fallback is not None:
            metadata["fallback"] = result.fallback.value
        return result.intent, metadata

    def _webhook_data(
        self,
        text: str,
        images: list[str],
        intent: Intent,
        session: str,
        conversation: Conversation,
        user_message: Message,
        context: dict[str, Any] | None,
    ) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": user_message.id,
            "content": text,
            "type": "text",
            "intent": intent.value,
            "sessionId": session,
            "conversationId": conversation.id,
            "context": context or {},
        }
        if images:
            data["images"] = images
        return data

    async def _extract(
        self,
        text: str,
        images: list[str],
        session: str,
        conversation: Conversation,
        user_message: Message,
        context: dict[str, Any] | None,
        user_info: dict[str, Any] | None,
    ) -> tuple[str, Recipe | None]:
        """Return the reply text and the validated recipe, if any."""
        if self.extraction_backend == "direct":
            extraction = await self.extractor.extract(text, images)
            return reply_text(extraction), extraction.recipe

        result = await self.gateway.dispatch(
            Intent.RECIPE_EXTRACTION,
            self._webhook_data(
                text, images, Intent.RECIPE_EXTRACTION, session, conversation, user_message, context
            ),
            user=user_info,
            apology=EXTRACTION_WEBHOOK_APOLOGY,
        )
        if result.recipe is None:
            return result.content, None
        extraction = parse_recipe_payload(result.recipe)
        if not extraction.ok:
            return reply_text(extraction), None
        return result.content, extraction.recipe

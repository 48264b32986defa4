"""General cooking conversation with a bounded history window."""

from __future__ import annotations

from loguru import logger

from mealprep_assistant.domain.models import ChatFallback, ChatMessage, ChatReply, Message
from mealprep_assistant.domain.prompts import GENERAL_CHAT_PROMPT
from mealprep_assistant.domain.protocols import IChatCompletionClient, IConversationStore

APOLOGY = (
    "I apologize, but I'm having trouble processing your message right now. Please try again."
)


def to_chat_messages(messages: list[Message]) -> list[ChatMessage]:
    return [
        ChatMessage(role="user" if m.sender == "user" else "assistant", content=m.content)
        for m in messages
        if m.content
    ]


class GeneralChatHandler:
    """Answers general cooking questions.

    Tries a history-aware call first, then a single-turn call, then gives
    up with a fixed apology.  ``ChatReply.fallback`` records which path
    produced the text.
    """

    def __init__(
        self,
        client: IChatCompletionClient,
        store: IConversationStore,
        model: str,
        history_limit: int = 10,
    ) -> None:
        self.client = client
        self.store = store
        self.model = model
        self.history_limit = history_limit

    def _load_history(self, conversation_id: str, exclude_message_id: str | None) -> list[ChatMessage]:
        recent = self.store.get_recent_messages(conversation_id, self.history_limit + 1)
        recent = [m for m in recent if m.id != exclude_message_id]
        return to_chat_messages(recent[-self.history_limit :])

    async def respond(
        self,
        message: str,
        conversation_id: str,
        exclude_message_id: str | None = None,
    ) -> ChatReply:
        """Reply to *message* in the context of *conversation_id*.

        Args:
            message: The user's text.
            conversation_id: Conversation whose recent turns form the context.
            exclude_message_id: The stored copy of *message*, left out of the
                history so it is not sent twice.
        """
        try:
            history = self._load_history(conversation_id, exclude_message_id)
            text = await self.client.complete_with_history(
                GENERAL_CHAT_PROMPT,
                history,
                message,
                model=self.model,
                temperature=0.7,
                max_tokens=500,
            )
            if not text.strip():
                raise ValueError("empty completion")
            return ChatReply(text=text.strip())
        except Exception as exc:
            logger.warning("History-aware chat failed, retrying single-turn | {}", exc)

        try:
            text = await self.client.complete(
                GENERAL_CHAT_PROMPT,
                message,
                model=self.model,
                temperature=0.7,
                max_tokens=500,
            )
            if not text.strip():
                raise ValueError("empty completion")
            return ChatReply(text=text.strip(), fallback=ChatFallback.SINGLE_TURN)
        except Exception as exc:
            logger.error("Single-turn chat failed, returning apology | {}", exc)
            return ChatReply(text=APOLOGY, fallback=ChatFallback.APOLOGY)

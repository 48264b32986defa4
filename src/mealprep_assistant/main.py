"""FastAPI backend for the meal-prep assistant.

This module is a thin **presentation layer**.  All routing and retrieval
logic lives in ``application.use_cases`` and ``infrastructure`` so it can be
tested and reused independently of any HTTP framework.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from mealprep_assistant.application.use_cases.general_chat import GeneralChatHandler
from mealprep_assistant.application.use_cases.intent_classifier import IntentClassifier
from mealprep_assistant.application.use_cases.message_router import MessageRouter
from mealprep_assistant.application.use_cases.recipe_extractor import RecipeExtractor
from mealprep_assistant.application.use_cases.recipe_search import RecipeSearchHandler
from mealprep_assistant.config import Settings, get_settings
from mealprep_assistant.infrastructure.chat_completion import ChatCompletionClient
from mealprep_assistant.infrastructure.conversation_store import ConversationStore
from mealprep_assistant.infrastructure.embedding_client import OpenAIEmbeddingClient
from mealprep_assistant.infrastructure.retrieval_service import HybridRetrievalService
from mealprep_assistant.infrastructure.webhook_gateway import WebhookGateway
from mealprep_assistant.logging_config import setup_logging
from mealprep_assistant.presentation.routes import chat, search


def build_router(
    settings: Settings,
    store: ConversationStore,
    client: ChatCompletionClient,
    retrieval: HybridRetrievalService,
    gateway: WebhookGateway,
) -> MessageRouter:
    """Wire the chat-turn handlers from settings and shared services."""
    search_handler = RecipeSearchHandler(
        settings.rag_backend,
        gateway,
        retrieval=retrieval,
        client=client,
        model=settings.chat_model,
        result_limit=min(5, settings.search_default_limit),
    )
    return MessageRouter(
        store=store,
        classifier=IntentClassifier(client, settings.intent_model),
        extractor=RecipeExtractor(
            client, settings.extraction_text_model, settings.extraction_vision_model
        ),
        chat=GeneralChatHandler(
            client, store, settings.chat_model, history_limit=settings.chat_history_limit
        ),
        search=search_handler,
        gateway=gateway,
        extraction_backend=settings.extraction_backend,
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Optional Settings override (defaults to get_settings() at startup).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Set up and tear down services around the application lifetime."""
        s = settings or get_settings()
        setup_logging(level=s.log_level, json=s.log_json)
        s.validate_runtime()

        store = ConversationStore(db_path=s.chat_db_path)
        store.connect()

        client = ChatCompletionClient.from_settings(s)
        retrieval = HybridRetrievalService(
            s.recipes_db_path,
            OpenAIEmbeddingClient.from_settings(s),
            similarity_threshold=s.similarity_threshold,
            vector_weight=s.vector_weight,
            lexical_weight=s.lexical_weight,
        )
        gateway = WebhookGateway.from_settings(s)

        app.state.settings = s
        app.state.store = store
        app.state.retrieval = retrieval
        app.state.gateway = gateway
        app.state.router = build_router(s, store, client, retrieval, gateway)

        logger.info(
            "Application startup complete | rag_backend={} webhook={}",
            s.rag_backend,
            "on" if gateway.configured else "off",
        )
        yield

        await gateway.aclose()
        store.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Meal Prep Assistant",
        description="Conversational intent routing and hybrid recipe search.",
        version="0.3.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat.router)
    app.include_router(search.router)
    return app


app = create_app()


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("mealprep_assistant.main:app", host="0.0.0.0", port=8000, reload=True)

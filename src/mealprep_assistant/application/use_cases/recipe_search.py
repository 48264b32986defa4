"""Answers "find my recipes" messages.

Two backends, picked by configuration:

- ``webhook``: the external workflow engine does retrieval and answering.
- ``local``: the in-process hybrid retrieval engine finds candidates and the
  chat model writes a short answer grounded on them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from loguru import logger

from mealprep_assistant.domain.models import Intent, SearchResult, WebhookFailure
from mealprep_assistant.domain.prompts import RECIPE_SEARCH_ANSWER_PROMPT
from mealprep_assistant.domain.protocols import IChatCompletionClient, IRecipeSearch, IWebhookGateway

UNAVAILABLE = "Recipe search is temporarily unavailable. Please try again later."
SEARCH_APOLOGY = "I had trouble searching your recipes. Please try rephrasing your question."
NO_MATCHES = (
    "I couldn't find any saved recipes matching that. "
    "Try a different ingredient or part of the recipe name."
)

RagBackend = Literal["webhook", "local"]


@dataclass
class SearchReply:
    text: str
    results: list[SearchResult] = field(default_factory=list)
    webhook_failure: WebhookFailure | None = None


def format_results(results: list[SearchResult]) -> str:
    """Plain-text list used when no model answer is available."""
    lines = [f"I found {len(results)} matching recipe(s) in your collection:"]
    for i, r in enumerate(results, 1):
        line = f"{i}. {r.title}"
        if r.description:
            line += f": {r.description}"
        lines.append(line)
    return "\n".join(lines)


def _context_block(results: list[SearchResult]) -> str:
    parts: list[str] = []
    for i, r in enumerate(results, 1):
        ingredients = ", ".join(
            ing.get("name", "") if isinstance(ing, dict) else str(ing) for ing in r.ingredients
        )
        parts.append(
            f"[Recipe {i}]\n"
            f"Title: {r.title}\n"
            f"Description: {r.description or 'N/A'}\n"
            f"Ingredients: {ingredients or 'N/A'}\n"
            f"Relevance: {r.combined_score:.3f}"
        )
    return "\n---\n".join(parts)


class RecipeSearchHandler:
    def __init__(
        self,
        backend: RagBackend,
        gateway: IWebhookGateway,
        *,
        retrieval: IRecipeSearch | None = None,
        client: IChatCompletionClient | None = None,
        model: str | None = None,
        result_limit: int = 5,
    ) -> None:
        if backend == "local" and (retrieval is None or client is None or model is None):
            raise ValueError("The local search backend needs a retrieval service, client and model")
        self.backend = backend
        self.gateway = gateway
        self.retrieval = retrieval
        self.client = client
        self.model = model
        self.result_limit = result_limit

    async def respond(
        self,
        message: str,
        *,
        user_id: str,
        webhook_data: dict[str, Any],
        user_info: dict[str, Any] | None = None,
    ) -> SearchReply:
        if self.backend == "webhook":
            return await self._via_webhook(webhook_data, user_info)
        return await self._via_local(message, user_id)

    async def _via_webhook(
        self, data: dict[str, Any], user_info: dict[str, Any] | None
    ) -> SearchReply:
        if not self.gateway.configured:
            logger.info("Recipe search requested but the webhook is disabled")
            return SearchReply(text=UNAVAILABLE, webhook_failure=WebhookFailure.DISABLED)

        result = await self.gateway.dispatch(
            Intent.RAG_SEARCH, data, user=user_info, apology=SEARCH_APOLOGY
        )
        return SearchReply(text=result.content, webhook_failure=result.failure)

    async def _via_local(self, message: str, user_id: str) -> SearchReply:
        assert self.retrieval and self.client and self.model
        results = await self.retrieval.search(message, user_id, limit=self.result_limit)
        if not results:
            return SearchReply(text=NO_MATCHES)

        try:
            answer = await self.client.complete(
                RECIPE_SEARCH_ANSWER_PROMPT,
                f"Question: {message}\n\nSaved recipes:\n{_context_block(results)}",
                model=self.model,
                temperature=0.3,
                max_tokens=500,
            )
        except Exception as exc:
            logger.warning("Grounded answer failed, returning plain list | {}", exc)
            return SearchReply(text=format_results(results), results=results)

        return SearchReply(text=answer.strip() or format_results(results), results=results)

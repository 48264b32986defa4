"""Tests for the rag_search handler's local backend."""

from unittest.mock import AsyncMock

import pytest

from mealprep_assistant.application.use_cases.recipe_search import (
    NO_MATCHES,
    RecipeSearchHandler,
    format_results,
)
from mealprep_assistant.domain.models import SearchResult


def _result(recipe_id: str, title: str, description: str | None = None) -> SearchResult:
    return SearchResult(
        recipe_id=recipe_id,
        title=title,
        description=description,
        ingredients=[{"name": "chicken"}],
        combined_score=0.8,
    )


@pytest.fixture()
def retrieval() -> AsyncMock:
    svc = AsyncMock()
    svc.search.return_value = [_result("r1", "Chicken Curry", "Mild"), _result("r2", "Chicken Soup")]
    return svc


@pytest.fixture()
def handler(retrieval, mock_client) -> RecipeSearchHandler:
    return RecipeSearchHandler(
        "local", AsyncMock(), retrieval=retrieval, client=mock_client, model="chat-model", result_limit=5
    )


class TestLocalBackend:
    async def test_grounded_answer(self, handler, retrieval, mock_client):
        mock_client.complete.return_value = "  You have a mild Chicken Curry.  "

        reply = await handler.respond("chicken ideas?", user_id="alice", webhook_data={})

        assert reply.text == "You have a mild Chicken Curry."
        assert [r.recipe_id for r in reply.results] == ["r1", "r2"]
        retrieval.search.assert_awaited_once_with("chicken ideas?", "alice", limit=5)
        prompt = mock_client.complete.call_args.args[1]
        assert "Title: Chicken Curry" in prompt
        assert mock_client.complete.call_args.kwargs["temperature"] == 0.3

    async def test_no_results(self, handler, retrieval, mock_client):
        retrieval.search.return_value = []
        reply = await handler.respond("tofu", user_id="alice", webhook_data={})

        assert reply.text == NO_MATCHES
        mock_client.complete.assert_not_awaited()

    async def test_answer_failure_falls_back_to_list(self, handler, mock_client):
        mock_client.complete.side_effect = RuntimeError("model down")
        reply = await handler.respond("chicken", user_id="alice", webhook_data={})

        assert reply.text == (
            "I found 2 matching recipe(s) in your collection:\n1. Chicken Curry: Mild\n2. Chicken Soup"
        )
        assert reply.text == format_results(reply.results)

    def test_local_backend_needs_its_collaborators(self):
        with pytest.raises(ValueError):
            RecipeSearchHandler("local", AsyncMock())

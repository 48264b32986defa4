"""Tests for the fail-open intent classifier."""

import httpx
import pytest

from mealprep_assistant.application.use_cases.intent_classifier import FALLBACK_CONFIDENCE, IntentClassifier
from mealprep_assistant.domain.models import ClassificationFallback, Intent


@pytest.fixture()
def classifier(mock_client) -> IntentClassifier:
    return IntentClassifier(mock_client, "intent-model")


class TestClassify:
    async def test_valid_reply(self, classifier, mock_client):
        mock_client.complete_json.return_value = {
            "intent": "rag_search",
            "reason": "asks about saved recipes",
            "confidence": 0.92,
        }
        result = await classifier.classify("What chicken recipes do I have?")

        assert result.intent is Intent.RAG_SEARCH
        assert result.confidence == pytest.approx(0.92)
        assert result.reason == "asks about saved recipes"
        assert result.fallback is None

        kwargs = mock_client.complete_json.call_args.kwargs
        assert kwargs["model"] == "intent-model"
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 150

    async def test_intent_is_case_insensitive(self, classifier, mock_client):
        mock_client.complete_json.return_value = {"intent": " Recipe_Extraction ", "confidence": 0.8}
        result = await classifier.classify("Here's my grandma's recipe...")
        assert result.intent is Intent.RECIPE_EXTRACTION

    async def test_images_are_summarised_as_a_count(self, classifier, mock_client):
        await classifier.classify("", images=["https://a", "https://b"])
        user_text = mock_client.complete_json.call_args.args[1]
        assert user_text == "Classify this content\n\n[2 image(s) provided]"
        assert "images" not in mock_client.complete_json.call_args.kwargs

    @pytest.mark.parametrize(("raw", "expected"), [(3, 1.0), (-1, 0.0), ("0.7", 0.7), ("high", 0.5), (None, 0.5)])
    async def test_confidence_is_clamped(self, classifier, mock_client, raw, expected):
        mock_client.complete_json.return_value = {"intent": "general_chat", "confidence": raw}
        result = await classifier.classify("hello")
        assert result.confidence == pytest.approx(expected)


class TestFallbacks:
    async def test_unknown_intent(self, classifier, mock_client):
        mock_client.complete_json.return_value = {"intent": "order_pizza", "confidence": 0.99}
        result = await classifier.classify("get me a pizza")

        assert result.intent is Intent.GENERAL_CHAT
        assert result.confidence == FALLBACK_CONFIDENCE
        assert result.reason == "Invalid intent from classifier"
        assert result.fallback is ClassificationFallback.INVALID_INTENT

    async def test_unparseable_reply(self, classifier, mock_client):
        mock_client.complete_json.side_effect = ValueError("Expecting value")
        result = await classifier.classify("hello")

        assert result.intent is Intent.GENERAL_CHAT
        assert result.fallback is ClassificationFallback.PARSE_ERROR
        assert result.degraded

    async def test_upstream_error(self, classifier, mock_client):
        mock_client.complete_json.side_effect = httpx.ConnectError("connection refused")
        result = await classifier.classify("hello")

        assert result.intent is Intent.GENERAL_CHAT
        assert result.confidence == FALLBACK_CONFIDENCE
        assert result.fallback is ClassificationFallback.UPSTREAM_ERROR
        assert result.reason == "Error: connection refused"

    async def test_upstream_error_without_message_uses_type_name(self, classifier, mock_client):
        mock_client.complete_json.side_effect = TimeoutError()
        result = await classifier.classify("hello")
        assert result.reason == "Error: TimeoutError"

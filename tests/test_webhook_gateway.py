"""Tests for the workflow-engine webhook gateway, using httpx.MockTransport."""

import json

import httpx
import pytest

from mealprep_assistant.domain.models import Intent, WebhookFailure
from mealprep_assistant.infrastructure.webhook_gateway import (
    SOURCE,
    ParsedReply,
    UnparseableReply,
    WebhookGateway,
    parse_webhook_reply,
)

URL = "https://n8n.example/webhook/chat"
APOLOGY = "Sorry, try again later."


def _gateway(handler, **kwargs) -> WebhookGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebhookGateway(URL, client=client, version="9.9.9", **kwargs)


def _reply(body, status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    return handler


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------


class TestParseWebhookReply:
    @pytest.mark.parametrize(
        ("payload", "key", "text"),
        [
            ({"content": "A", "message": "B"}, "content", "A"),
            ({"message": "B", "output": "C"}, "message", "B"),
            ({"output": "C", "response": "D"}, "output", "C"),
            ({"response": "D"}, "response", "D"),
            ({"content": "", "output": "C"}, "output", "C"),
            ([{"output": "wrapped"}], "output", "wrapped"),
        ],
    )
    def test_key_priority(self, payload, key, text):
        reply = parse_webhook_reply(json.dumps(payload))
        assert reply == ParsedReply(text=text, key=key)

    def test_recipe_is_carried(self):
        reply = parse_webhook_reply(json.dumps({"message": "Got it", "recipe": {"title": "Toast"}}))
        assert isinstance(reply, ParsedReply)
        assert reply.recipe == {"title": "Toast"}

    @pytest.mark.parametrize("body", ["plain text answer", '{"data": 1}', "[1, 2]", ""])
    def test_unparseable(self, body):
        assert parse_webhook_reply(body) == UnparseableReply(raw_body=body)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class TestDispatch:
    async def test_envelope_and_headers(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"output": "Here are your recipes"})

        gateway = _gateway(handler)
        result = await gateway.dispatch(
            Intent.RAG_SEARCH,
            {"content": "find curry"},
            user={"id": "alice", "name": "Alice", "email": "a@example.com"},
            apology=APOLOGY,
            metadata={"conversationId": "c-1"},
        )

        assert result.ok
        assert result.content == "Here are your recipes"
        assert result.reply_key == "output"

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == URL
        assert request.headers["X-Event-Type"] == "chat.rag_search"
        assert request.headers["X-Source"] == SOURCE

        body = json.loads(request.content)
        assert body["event"] == "chat.rag_search"
        assert body["data"] == {"content": "find curry"}
        assert body["user"]["id"] == "alice"
        assert body["metadata"] == {"source": SOURCE, "version": "9.9.9", "conversationId": "c-1"}
        assert body["timestamp"]

    async def test_plain_text_body_is_used_verbatim(self):
        gateway = _gateway(_reply("  Just some text  "))
        result = await gateway.dispatch(Intent.GENERAL_CHAT, {}, user=None, apology=APOLOGY)
        assert result.ok
        assert result.content == "Just some text"
        assert result.reply_key is None

    async def test_timeout_returns_apology(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = await _gateway(handler).dispatch(Intent.RAG_SEARCH, {}, user=None, apology=APOLOGY)
        assert not result.ok
        assert result.content == APOLOGY
        assert result.failure is WebhookFailure.TIMEOUT

    async def test_server_error_returns_apology(self):
        result = await _gateway(_reply({"message": "boom"}, status=500)).dispatch(
            Intent.RAG_SEARCH, {}, user=None, apology=APOLOGY
        )
        assert result.content == APOLOGY
        assert result.failure is WebhookFailure.HTTP_ERROR

    async def test_connection_error_returns_apology(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        result = await _gateway(handler).dispatch(Intent.RAG_SEARCH, {}, user=None, apology=APOLOGY)
        assert result.failure is WebhookFailure.TRANSPORT_ERROR

    async def test_invalid_url_returns_apology(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.InvalidURL("Invalid non-printable ASCII character in URL")

        result = await _gateway(handler).dispatch(Intent.RAG_SEARCH, {}, user=None, apology=APOLOGY)
        assert result.content == APOLOGY
        assert result.failure is WebhookFailure.TRANSPORT_ERROR

    async def test_empty_body_returns_apology(self):
        result = await _gateway(_reply("")).dispatch(Intent.RAG_SEARCH, {}, user=None, apology=APOLOGY)
        assert result.content == APOLOGY
        assert result.failure is WebhookFailure.EMPTY_REPLY

    async def test_disabled_gateway_never_sends(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"content": "x"})

        no_url = WebhookGateway(None, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        for gateway in (_gateway(handler, enabled=False), no_url):
            result = await gateway.dispatch(Intent.RAG_SEARCH, {}, user=None, apology=APOLOGY)
            assert result.failure is WebhookFailure.DISABLED
            assert result.content == APOLOGY
            assert not gateway.configured
        assert calls == []

    @pytest.mark.parametrize(("intent", "expected"), [(Intent.RECIPE_EXTRACTION, 120.0), (Intent.RAG_SEARCH, 30.0)])
    async def test_timeout_depends_on_intent(self, intent, expected):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"content": "ok"})

        gateway = _gateway(handler, default_timeout=30.0, extraction_timeout=120.0)
        await gateway.dispatch(intent, {}, user=None, apology=APOLOGY)

        assert seen[0].extensions["timeout"]["read"] == expected
        assert gateway.timeout_for(intent) == expected

"""Gateway to the external workflow engine (n8n) reachable only by webhook.

``dispatch`` never raises: every failure is logged and turned into the
caller-supplied apology so the chat turn still completes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx
from loguru import logger

from mealprep_assistant.config import Settings
from mealprep_assistant.domain.models import Intent, WebhookFailure, WebhookResult

SOURCE = "meal-prep-api"

# Reply keys, in priority order.
REPLY_KEYS = ("content", "message", "output", "response")


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParsedReply:
    """A reply with a recognised text field."""

    text: str
    key: str
    recipe: dict | None = None


@dataclass(frozen=True)
class UnparseableReply:
    """A reply with no recognised text field; the raw body is kept verbatim."""

    raw_body: str


def _text_value(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (dict, list)):
        return None
    return str(value)


def parse_webhook_reply(body: str) -> ParsedReply | UnparseableReply:
    """Read the reply text from a webhook response body.

    JSON objects are probed for ``content``, ``message``, ``output`` then
    ``response``; the first non-empty one wins.  A one-element JSON array
    wrapping such an object is unwrapped first.  Anything else is returned
    as ``UnparseableReply`` carrying the raw body.
    """
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, ValueError):
        return UnparseableReply(raw_body=body)

    if isinstance(payload, list) and len(payload) == 1 and isinstance(payload[0], dict):
        payload = payload[0]
    if not isinstance(payload, dict):
        return UnparseableReply(raw_body=body)

    recipe = payload.get("recipe") if isinstance(payload.get("recipe"), dict) else None
    for key in REPLY_KEYS:
        text = _text_value(payload.get(key))
        if text is not None:
            return ParsedReply(text=text, key=key, recipe=recipe)
    return UnparseableReply(raw_body=body)


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


def event_name(intent: Intent) -> str:
    return f"chat.{intent.value}"


class WebhookGateway:
    """POSTs chat events to the workflow engine and reads back a reply.

    Parameters
    ----------
    url:
        Webhook endpoint; ``None`` leaves the gateway unconfigured.
    enabled:
        Master switch.  When off, ``dispatch`` returns the apology at once.
    default_timeout / extraction_timeout:
        Seconds to wait for a reply.  Recipe-extraction events get the
        longer value.
    client:
        Optional shared ``httpx.AsyncClient`` (tests pass one with a
        ``MockTransport``).
    """

    def __init__(
        self,
        url: str | None,
        *,
        enabled: bool = True,
        default_timeout: float = 30.0,
        extraction_timeout: float = 120.0,
        version: str = "1.0.0",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.enabled = enabled
        self.default_timeout = default_timeout
        self.extraction_timeout = extraction_timeout
        self.version = version
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": "MealPrep-API/1.0", "Content-Type": "application/json"}
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> WebhookGateway:
        return cls(
            settings.n8n_webhook_url,
            enabled=settings.webhook_enabled,
            default_timeout=settings.webhook_timeout_seconds,
            extraction_timeout=settings.webhook_extraction_timeout_seconds,
            version=settings.app_version,
        )

    @property
    def configured(self) -> bool:
        return self.enabled and bool(self.url)

    def timeout_for(self, intent: Intent) -> float:
        if intent is Intent.RECIPE_EXTRACTION:
            return self.extraction_timeout
        return self.default_timeout

    def build_envelope(
        self,
        intent: Intent,
        data: dict[str, Any],
        user: dict[str, Any] | None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return {
            "event": event_name(intent),
            "timestamp": datetime.now(UTC).isoformat(),
            "data": data,
            "user": user,
            "metadata": {"source": SOURCE, "version": self.version, **(metadata or {})},
        }

    async def aclose(self) -> None:
        await self._client.aclose()

    async def dispatch(
        self,
        intent: Intent,
        data: dict[str, Any],
        *,
        user: dict[str, Any] | None,
        apology: str,
        metadata: dict[str, Any] | None = None,
    ) -> WebhookResult:
        """Send one event and return the reply text, or *apology* on failure.

        Never raises.  No retries.
        """
        event = event_name(intent)
        if not self.configured:
            logger.info("Webhook disabled or URL not configured | event={}", event)
            return WebhookResult(content=apology, ok=False, failure=WebhookFailure.DISABLED)

        envelope = self.build_envelope(intent, data, user, metadata)
        timeout = self.timeout_for(intent)
        try:
            response = await self._client.post(
                self.url,  # type: ignore[arg-type]
                json=envelope,
                headers={"X-Event-Type": event, "X-Source": SOURCE},
                timeout=timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException:
            logger.warning("Webhook timed out after {}s | event={}", timeout, event)
            return WebhookResult(content=apology, ok=False, failure=WebhookFailure.TIMEOUT)
        except httpx.HTTPStatusError as exc:
            logger.warning("Webhook returned {} | event={}", exc.response.status_code, event)
            return WebhookResult(content=apology, ok=False, failure=WebhookFailure.HTTP_ERROR)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Webhook request failed | event={} error={}", event, exc)
            return WebhookResult(content=apology, ok=False, failure=WebhookFailure.TRANSPORT_ERROR)

        reply = parse_webhook_reply(response.text)
        match reply:
            case ParsedReply(text=text, key=key, recipe=recipe):
                logger.info("Webhook reply | event={} key={}", event, key)
                return WebhookResult(content=text, ok=True, recipe=recipe, reply_key=key)
            case UnparseableReply(raw_body=raw) if raw.strip():
                logger.info("Webhook reply had no known key, using raw body | event={}", event)
                return WebhookResult(content=raw.strip(), ok=True)
            case _:
                logger.warning("Webhook returned an empty body | event={}", event)
                return WebhookResult(content=apology, ok=False, failure=WebhookFailure.EMPTY_REPLY)

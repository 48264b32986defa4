"""Intent classification for incoming chat messages.

Fails open: any upstream error, unparseable reply or unknown intent yields
``general_chat`` with confidence 0.5, tagged with the fallback that fired.
"""

from __future__ import annotations

import math
from typing import Any

from loguru import logger

from mealprep_assistant.domain.models import ClassificationFallback, Intent, IntentResult
from mealprep_assistant.domain.prompts import INTENT_CLASSIFICATION_PROMPT, classification_user_prompt
from mealprep_assistant.domain.protocols import IChatCompletionClient

FALLBACK_CONFIDENCE = 0.5


def _fallback(reason: str, code: ClassificationFallback) -> IntentResult:
    logger.warning("Intent classification degraded to general_chat | code={} reason={}", code, reason)
    return IntentResult(
        intent=Intent.GENERAL_CHAT,
        reason=reason,
        confidence=FALLBACK_CONFIDENCE,
        fallback=code,
    )


def _confidence(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return FALLBACK_CONFIDENCE
    if math.isnan(number):
        return FALLBACK_CONFIDENCE
    return min(1.0, max(0.0, number))


class IntentClassifier:
    """Maps a message (plus optional images) to one of the three intents."""

    def __init__(self, client: IChatCompletionClient, model: str) -> None:
        self.client = client
        self.model = model

    async def classify(self, message: str, images: list[str] | None = None) -> IntentResult:
        # Images are summarised as a count; the classifier runs on the text model.
        user_text = classification_user_prompt(message, len(images or []))
        try:
            parsed = await self.client.complete_json(
                INTENT_CLASSIFICATION_PROMPT,
                user_text,
                model=self.model,
                temperature=0.1,
                max_tokens=150,
            )
        except ValueError as exc:
            return _fallback(f"Could not parse classifier reply: {exc}", ClassificationFallback.PARSE_ERROR)
        except Exception as exc:
            return _fallback(f"Error: {str(exc) or type(exc).__name__}", ClassificationFallback.UPSTREAM_ERROR)

        raw_intent = str(parsed.get("intent", "")).strip().lower()
        try:
            intent = Intent(raw_intent)
        except ValueError:
            return _fallback("Invalid intent from classifier", ClassificationFallback.INVALID_INTENT)

        result = IntentResult(
            intent=intent,
            reason=str(parsed.get("reason") or "").strip(),
            confidence=_confidence(parsed.get("confidence")),
        )
        logger.info("Intent classified | intent={} confidence={:.2f}", result.intent, result.confidence)
        return result

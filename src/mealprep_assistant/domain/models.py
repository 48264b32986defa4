"""Domain entities and value objects.

These are the core data structures of the meal-prep assistant, independent
of any infrastructure or framework concerns.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------


class Intent(StrEnum):
    """The closed set of things a chat message can ask for."""

    RECIPE_EXTRACTION = "recipe_extraction"
    RAG_SEARCH = "rag_search"
    GENERAL_CHAT = "general_chat"


class IntentSource(StrEnum):
    MANUAL = "manual"
    AI = "ai"


class ClassificationFallback(StrEnum):
    """Why the classifier degraded to ``general_chat``."""

    INVALID_INTENT = "invalid_intent"
    PARSE_ERROR = "parse_error"
    UPSTREAM_ERROR = "upstream_error"


class ChatFallback(StrEnum):
    """Which fallback the general chat handler used, if any."""

    SINGLE_TURN = "single_turn"
    APOLOGY = "apology"


class WebhookFailure(StrEnum):
    DISABLED = "disabled"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    TRANSPORT_ERROR = "transport_error"
    EMPTY_REPLY = "empty_reply"


@dataclass(frozen=True)
class IntentResult:
    """Classifier output. Ephemeral: only ever folded into message metadata."""

    intent: Intent
    reason: str
    confidence: float
    fallback: ClassificationFallback | None = None

    @property
    def degraded(self) -> bool:
        return self.fallback is not None


# ---------------------------------------------------------------------------
# Recipes (extracted)
# ---------------------------------------------------------------------------

_UNICODE_FRACTIONS = {
    "½": " 1/2",
    "⅓": " 1/3",
    "⅔": " 2/3",
    "¼": " 1/4",
    "¾": " 3/4",
    "⅛": " 1/8",
}
_MIXED_FRACTION = re.compile(r"^(\d+)\s+(\d+)\s*/\s*(\d+)")
_FRACTION = re.compile(r"^(\d+)\s*/\s*(\d+)")
_DECIMAL = re.compile(r"^(\d+(?:\.\d+)?)")
_HOURS = re.compile(r"\b(hours?|hrs?|h)\b", re.IGNORECASE)


def coerce_number(value: Any) -> float | None:
    """Turn ``2.5``, ``"2 1/2"``, ``"½"``, ``"3 cups"`` into a float.

    Returns None for blanks and text with no leading quantity ("to taste").
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    for glyph, ascii_fraction in _UNICODE_FRACTIONS.items():
        text = text.replace(glyph, ascii_fraction)
    text = re.sub(r"(\d),(\d)", r"\1.\2", text).strip()

    if match := _MIXED_FRACTION.match(text):
        whole, num, den = (int(g) for g in match.groups())
        return whole + num / den if den else float(whole)
    if match := _FRACTION.match(text):
        num, den = (int(g) for g in match.groups())
        return num / den if den else None
    if match := _DECIMAL.match(text):
        return float(match.group(1))
    return None


def coerce_minutes(value: Any) -> int | None:
    """Coerce a duration to whole minutes; ``"1 hour"`` becomes 60."""
    number = coerce_number(value)
    if number is None:
        return None
    if isinstance(value, str) and _HOURS.search(value):
        number *= 60
    return round(number)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class Ingredient(_CamelModel):
    name: str = Field(min_length=1)
    amount: float | None = None
    unit: str = ""
    category: str | None = None
    notes: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_plain_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"name": data}
        return data

    @field_validator("amount", mode="before")
    @classmethod
    def _numeric_amount(cls, value: Any) -> float | None:
        return coerce_number(value)

    @field_validator("unit", mode="before")
    @classmethod
    def _blank_unit(cls, value: Any) -> str:
        return "" if value is None else str(value)


Difficulty = Literal["easy", "medium", "hard"]


class Recipe(_CamelModel):
    """A structured recipe. Title, ingredients and instructions are mandatory."""

    title: str = Field(min_length=1)
    description: str | None = None
    ingredients: list[Ingredient] = Field(min_length=1)
    instructions: list[str] = Field(min_length=1)
    prep_time: int | None = None
    cook_time: int | None = None
    total_time: int | None = None
    servings: int | None = None
    difficulty: Difficulty | None = None
    tags: list[str] = Field(default_factory=list)
    cuisine: str | None = None
    nutrition: dict[str, Any] | None = None

    @field_validator("ingredients", mode="before")
    @classmethod
    def _drop_blank_ingredients(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        kept = []
        for item in value:
            name = item.get("name") if isinstance(item, dict) else item
            if isinstance(name, str) and not name.strip():
                continue
            kept.append(item)
        return kept

    @field_validator("instructions", mode="before")
    @classmethod
    def _normalize_steps(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.splitlines()
        if not isinstance(value, list):
            return value
        steps: list[str] = []
        for step in value:
            if isinstance(step, dict):
                step = step.get("text") or step.get("instruction") or step.get("description") or ""
            text = str(step).strip()
            if text:
                steps.append(text)
        return steps

    @field_validator("prep_time", "cook_time", "total_time", mode="before")
    @classmethod
    def _minutes(cls, value: Any) -> int | None:
        return coerce_minutes(value)

    @field_validator("servings", mode="before")
    @classmethod
    def _servings(cls, value: Any) -> int | None:
        number = coerce_number(value)
        return None if number is None else round(number)

    @field_validator("difficulty", mode="before")
    @classmethod
    def _difficulty(cls, value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        value = value.strip().lower()
        return value if value in ("easy", "medium", "hard") else None

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(t).strip() for t in value if str(t).strip()]


@dataclass(frozen=True)
class ExtractionResult:
    """Either a validated recipe or a human-readable failure, never both."""

    recipe: Recipe | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.recipe is not None


# ---------------------------------------------------------------------------
# Conversation entities (persisted in the conversation store)
# ---------------------------------------------------------------------------


@dataclass
class Conversation:
    id: str
    user_id: str
    session_id: str
    title: str
    selected_intent: str | None
    metadata: dict = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""
    last_message_at: str | None = None


@dataclass
class Message:
    id: str
    conversation_id: str
    sender: str
    content: str
    message_type: str = "text"
    metadata: dict = field(default_factory=dict)
    created_at: str = ""


@dataclass
class ConversationSummary:
    id: str
    title: str
    session_id: str
    selected_intent: str | None
    created_at: str
    updated_at: str
    last_message_at: str | None
    message_count: int


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


class SearchType(StrEnum):
    SEMANTIC = "semantic"
    TEXT = "text"
    HYBRID = "hybrid"


@dataclass
class SearchResult:
    """A single recipe hit, denormalized from the recipe store.

    ``similarity_score`` and ``rank_score`` are the raw branch scores;
    ``combined_score`` is the weighted sum used for ordering.
    """

    recipe_id: str
    title: str
    description: str | None
    ingredients: list = field(default_factory=list)
    instructions: list = field(default_factory=list)
    similarity_score: float = 0.0
    rank_score: float = 0.0
    searchable_text: str = ""
    combined_score: float = 0.0


# ---------------------------------------------------------------------------
# Shared DTOs
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    """A single message in the conversation as sent to the model."""

    role: Literal["user", "assistant"] = Field(description="Message role: 'user' or 'assistant'")
    content: str = Field(description="Message content")


@dataclass(frozen=True)
class ChatReply:
    text: str
    fallback: ChatFallback | None = None


@dataclass
class ChatTurnResult:
    """Envelope returned by the router for one chat turn."""

    message: Message
    conversation_id: str
    session_id: str
    intent_metadata: dict
    recipe: dict | None = None


@dataclass(frozen=True)
class WebhookResult:
    """Outcome of one webhook dispatch. ``content`` is always user-presentable."""

    content: str
    ok: bool
    failure: WebhookFailure | None = None
    recipe: dict | None = None
    reply_key: str | None = None

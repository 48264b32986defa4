"""Chat-completion client over an OpenAI-compatible provider (OpenRouter by default).

Wraps pydantic-ai ``Agent`` runs so the use cases only see plain strings
and dicts.  Provider errors and timeouts propagate to the caller; each use
case decides its own fallback.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import re
from typing import Any

from loguru import logger
from openai import AsyncOpenAI
from pydantic_ai import (
    Agent,
    BinaryContent,
    ImageUrl,
    ModelRequest,
    ModelResponse,
    TextPart,
    UserPromptPart,
)
from pydantic_ai.messages import ModelMessage, SystemPromptPart, UserContent
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from mealprep_assistant.config import Settings
from mealprep_assistant.domain.models import ChatMessage

MAX_IMAGES = 4

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
_DATA_URI = re.compile(r"^data:(?P<media>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse a model reply as a JSON object, tolerating markdown code fences.

    Raises:
        ValueError: If the text is not a JSON object.
    """
    cleaned = text.strip()
    if match := _CODE_FENCE.match(cleaned):
        cleaned = match.group(1)
    else:
        # Models sometimes wrap the object in prose; keep the outermost braces.
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start != -1 and end > start:
            cleaned = cleaned[start : end + 1]

    parsed = json.loads(cleaned)
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def _image_part(image: str) -> UserContent:
    """Turn a URL or ``data:`` URI into a pydantic-ai content part."""
    if match := _DATA_URI.match(image):
        try:
            data = base64.b64decode(match.group("data"), validate=False)
        except binascii.Error as exc:
            raise ValueError("Malformed base64 image data") from exc
        return BinaryContent(data=data, media_type=match.group("media"))
    return ImageUrl(url=image)


def build_user_content(user_text: str, images: list[str] | None) -> str | list[UserContent]:
    """Combine prompt text and up to ``MAX_IMAGES`` images into one user turn."""
    if not images:
        return user_text
    if len(images) > MAX_IMAGES:
        logger.warning("Dropping {} image(s) over the limit of {}", len(images) - MAX_IMAGES, MAX_IMAGES)
    parts: list[UserContent] = [user_text]
    parts.extend(_image_part(img) for img in images[:MAX_IMAGES])
    return parts


def build_history(messages: list[ChatMessage]) -> list[ModelMessage]:
    """Convert ChatMessage list to PydanticAI message history format.

    Consecutive turns from the same role are merged so the provider always
    sees strictly alternating user/assistant messages.
    """
    merged: list[ChatMessage] = []
    for msg in messages:
        if merged and merged[-1].role == msg.role:
            merged[-1] = ChatMessage(role=msg.role, content=f"{merged[-1].content}\n\n{msg.content}")
        else:
            merged.append(msg)

    history: list[ModelMessage] = []
    for msg in merged:
        if msg.role == "user":
            history.append(ModelRequest(parts=[UserPromptPart(content=msg.content)]))
        else:
            history.append(ModelResponse(parts=[TextPart(content=msg.content)]))
    return history


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ChatCompletionClient:
    """Runs one-off completions against any model name the provider serves.

    Parameters
    ----------
    provider:
        pydantic-ai provider wrapping the ``AsyncOpenAI`` client.
    timeout_seconds:
        Upper bound for a single completion, including retries.
    model_override:
        Use this model for every call regardless of the requested name.
        Intended for tests (``FunctionModel`` / ``TestModel``).
    """

    def __init__(
        self,
        provider: OpenAIProvider | None,
        timeout_seconds: float = 30.0,
        *,
        model_override: Model | None = None,
    ) -> None:
        if provider is None and model_override is None:
            raise ValueError("Either a provider or a model_override is required")
        self.provider = provider
        self.timeout_seconds = timeout_seconds
        self.model_override = model_override
        self._agents: dict[tuple[str, str], Agent[None, str]] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> ChatCompletionClient:
        client = AsyncOpenAI(
            api_key=settings.llm_api_key,
            base_url=settings.resolved_llm_base_url,
            timeout=settings.ai_timeout_seconds,
            default_headers={"HTTP-Referer": settings.app_referer, "X-Title": "Meal Prep Assistant"},
        )
        return cls(OpenAIProvider(openai_client=client), timeout_seconds=settings.ai_timeout_seconds)

    def _agent(self, model: str, system_prompt: str) -> Agent[None, str]:
        key = (model, system_prompt)
        if key not in self._agents:
            llm = self.model_override or OpenAIChatModel(model, provider=self.provider)
            self._agents[key] = Agent(model=llm, system_prompt=system_prompt, output_type=str)
        return self._agents[key]

    async def _run(
        self,
        model: str,
        system_prompt: str,
        prompt: str | list[UserContent],
        history: list[ModelMessage] | None,
        temperature: float,
        max_tokens: int,
    ) -> str:
        agent = self._agent(model, system_prompt)
        settings = ModelSettings(temperature=temperature, max_tokens=max_tokens, timeout=self.timeout_seconds)
        result = await asyncio.wait_for(
            agent.run(prompt, message_history=history or None, model_settings=settings),
            timeout=self.timeout_seconds,
        )
        return result.output

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        *,
        model: str,
        images: list[str] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> str:
        """Single-turn completion; images are attached to the user turn."""
        prompt = build_user_content(user_message, images)
        return await self._run(model, system_prompt, prompt, None, temperature, max_tokens)

    async def complete_with_history(
        self,
        system_prompt: str,
        history: list[ChatMessage],
        user_message: str,
        *,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> str:
        """Completion with prior turns, oldest first."""
        # Prior turns must end with the assistant so the new user turn alternates.
        while history and history[-1].role == "user":
            user_message = f"{history[-1].content}\n\n{user_message}"
            history = history[:-1]
        messages = build_history(history)
        # The agent only adds its system prompt to an empty history.
        system_part = SystemPromptPart(content=system_prompt)
        if messages and isinstance(messages[0], ModelRequest):
            messages[0] = ModelRequest(parts=[system_part, *messages[0].parts])
        elif messages:
            messages.insert(0, ModelRequest(parts=[system_part]))
        return await self._run(model, system_prompt, user_message, messages, temperature, max_tokens)

    async def complete_json(
        self,
        system_prompt: str,
        user_message: str,
        *,
        model: str,
        images: list[str] | None = None,
        temperature: float = 0.1,
        max_tokens: int = 500,
    ) -> dict[str, Any]:
        """Completion whose reply must be a JSON object.

        Raises:
            ValueError: If the reply does not parse as a JSON object.
        """
        text = await self.complete(
            system_prompt,
            user_message,
            model=model,
            images=images,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return parse_json_object(text)

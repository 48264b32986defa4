"""Tests for the chat-completion client and its message helpers."""

import base64

import pytest
from pydantic_ai import BinaryContent, ImageUrl, ModelRequest, ModelResponse, TextPart, UserPromptPart
from pydantic_ai.messages import ModelMessage, SystemPromptPart
from pydantic_ai.models.function import AgentInfo, FunctionModel

from mealprep_assistant.domain.models import ChatMessage
from mealprep_assistant.infrastructure.chat_completion import (
    MAX_IMAGES,
    ChatCompletionClient,
    build_history,
    build_user_content,
    parse_json_object,
)

# ---------------------------------------------------------------------------
# parse_json_object
# ---------------------------------------------------------------------------


class TestParseJsonObject:
    def test_plain_object(self):
        assert parse_json_object('{"intent": "rag_search"}') == {"intent": "rag_search"}

    def test_code_fenced_object(self):
        text = '```json\n{"intent": "general_chat", "confidence": 0.8}\n```'
        assert parse_json_object(text)["confidence"] == 0.8

    def test_object_wrapped_in_prose(self):
        text = 'Sure! Here it is: {"title": "Toast"} Hope that helps.'
        assert parse_json_object(text) == {"title": "Toast"}

    def test_not_json_raises(self):
        with pytest.raises(ValueError):
            parse_json_object("I cannot help with that.")

    def test_array_raises(self):
        with pytest.raises(ValueError, match="JSON object"):
            parse_json_object("[1, 2, 3]")


# ---------------------------------------------------------------------------
# Message building
# ---------------------------------------------------------------------------


class TestBuildHistory:
    def test_alternating_roles(self):
        history = build_history(
            [ChatMessage(role="user", content="hi"), ChatMessage(role="assistant", content="hello")]
        )
        assert isinstance(history[0], ModelRequest)
        assert isinstance(history[1], ModelResponse)

    def test_consecutive_same_role_turns_are_merged(self):
        history = build_history(
            [
                ChatMessage(role="user", content="one"),
                ChatMessage(role="user", content="two"),
                ChatMessage(role="assistant", content="reply"),
            ]
        )
        assert len(history) == 2
        part = history[0].parts[0]
        assert isinstance(part, UserPromptPart)
        assert part.content == "one\n\ntwo"

    def test_empty(self):
        assert build_history([]) == []


class TestBuildUserContent:
    def test_text_only(self):
        assert build_user_content("hello", None) == "hello"

    def test_url_and_data_uri_images(self):
        encoded = base64.b64encode(b"\x89PNG").decode()
        parts = build_user_content("look", ["https://img.example/a.jpg", f"data:image/png;base64,{encoded}"])
        assert parts[0] == "look"
        assert isinstance(parts[1], ImageUrl)
        assert isinstance(parts[2], BinaryContent)
        assert parts[2].data == b"\x89PNG"
        assert parts[2].media_type == "image/png"

    def test_images_over_the_limit_are_dropped(self):
        images = [f"https://img.example/{i}.jpg" for i in range(MAX_IMAGES + 2)]
        parts = build_user_content("look", images)
        assert len(parts) == 1 + MAX_IMAGES


# ---------------------------------------------------------------------------
# Client runs against a FunctionModel
# ---------------------------------------------------------------------------


def _echo_model(seen: list[list[ModelMessage]], reply: str = "ok") -> FunctionModel:
    def fn(messages: list[ModelMessage], info: AgentInfo) -> ModelResponse:
        seen.append(messages)
        return ModelResponse(parts=[TextPart(content=reply)])

    return FunctionModel(fn)


def _system_prompts(messages: list[ModelMessage]) -> list[str]:
    return [
        part.content
        for msg in messages
        if isinstance(msg, ModelRequest)
        for part in msg.parts
        if isinstance(part, SystemPromptPart)
    ]


class TestChatCompletionClient:
    def test_requires_provider_or_override(self):
        with pytest.raises(ValueError):
            ChatCompletionClient(None)

    async def test_complete_returns_text(self):
        seen: list[list[ModelMessage]] = []
        client = ChatCompletionClient(None, model_override=_echo_model(seen, "Boil the pasta."))
        out = await client.complete("system", "How do I cook pasta?", model="any")
        assert out == "Boil the pasta."
        assert len(seen) == 1

    async def test_complete_json_parses_reply(self):
        seen: list[list[ModelMessage]] = []
        model = _echo_model(seen, '```json\n{"intent": "rag_search", "confidence": 0.9}\n```')
        client = ChatCompletionClient(None, model_override=model)
        parsed = await client.complete_json("system", "find my curry", model="any")
        assert parsed == {"intent": "rag_search", "confidence": 0.9}

    async def test_complete_json_raises_on_prose(self):
        client = ChatCompletionClient(None, model_override=_echo_model([], "no json here"))
        with pytest.raises(ValueError):
            await client.complete_json("system", "hi", model="any")

    async def test_history_is_sent_and_trailing_user_turn_folded(self):
        seen: list[list[ModelMessage]] = []
        client = ChatCompletionClient(None, model_override=_echo_model(seen))
        history = [
            ChatMessage(role="user", content="I like spicy food"),
            ChatMessage(role="assistant", content="Noted!"),
            ChatMessage(role="user", content="Also vegetarian"),
        ]
        await client.complete_with_history("Be a kitchen helper.", history, "Suggest dinner", model="any")

        messages = seen[0]
        # two prior turns plus the new request
        assert len(messages) == 3
        last_parts = [p for p in messages[-1].parts if isinstance(p, UserPromptPart)]
        assert last_parts[-1].content == "Also vegetarian\n\nSuggest dinner"
        assert _system_prompts(messages) == ["Be a kitchen helper."]

    async def test_system_prompt_sent_once_with_and_without_history(self):
        seen: list[list[ModelMessage]] = []
        client = ChatCompletionClient(None, model_override=_echo_model(seen))
        history = [ChatMessage(role="user", content="hi"), ChatMessage(role="assistant", content="hello")]

        await client.complete_with_history("general", history, "how do I boil eggs?", model="any")
        await client.complete_with_history("general", [], "how do I boil eggs?", model="any")
        await client.complete("general", "how do I boil eggs?", model="any")

        assert [_system_prompts(messages) for messages in seen] == [["general"]] * 3

    async def test_history_opening_with_assistant_keeps_system_prompt_first(self):
        seen: list[list[ModelMessage]] = []
        client = ChatCompletionClient(None, model_override=_echo_model(seen))
        history = [ChatMessage(role="assistant", content="Welcome back!")]

        await client.complete_with_history("general", history, "thanks", model="any")

        first = seen[0][0]
        assert isinstance(first, ModelRequest)
        assert isinstance(first.parts[0], SystemPromptPart)
        assert _system_prompts(seen[0]) == ["general"]

    async def test_agents_are_cached_per_model_and_prompt(self):
        client = ChatCompletionClient(None, model_override=_echo_model([]))
        await client.complete("a", "x", model="m1")
        await client.complete("a", "y", model="m1")
        await client.complete("b", "z", model="m1")
        assert len(client._agents) == 2

"""Shared fixtures for the meal-prep assistant tests."""

import sqlite3
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from mealprep_assistant.config import Settings
from mealprep_assistant.domain.models import Recipe
from mealprep_assistant.infrastructure.conversation_store import ConversationStore
from mealprep_assistant.infrastructure.recipe_index import create_tables, index_recipe


def pytest_configure(config):
    """Set pytest-asyncio mode to auto so async test functions work without markers."""
    config.option.asyncio_mode = "auto"


def sqlite_vec_available() -> bool:
    """True when this interpreter's sqlite3 can load the sqlite-vec extension."""
    if not hasattr(sqlite3.Connection, "enable_load_extension"):
        return False
    try:
        import sqlite_vec

        conn = sqlite3.connect(":memory:")
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.close()
    except Exception:
        return False
    return True


class FakeEmbeddingClient:
    """Returns a fixed vector per known text, and a default for everything else."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, default=None, fail: bool = False):
        self.vectors = vectors or {}
        self.default = default or [1.0, 0.0, 0.0]
        self.fail = fail
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise RuntimeError("embedding provider down")
        return self.vectors.get(text, self.default)


# ---------------------------------------------------------------------------
# Sample recipes
# ---------------------------------------------------------------------------

CHICKEN_CURRY = Recipe.model_validate(
    {
        "title": "Chicken Curry",
        "description": "A mild weeknight curry",
        "ingredients": [{"name": "chicken thighs", "amount": 500, "unit": "g"}, "coconut milk"],
        "instructions": ["Brown the chicken.", "Simmer in coconut milk."],
        "difficulty": "easy",
        "tags": ["dinner"],
    }
)

BEEF_STEW = Recipe.model_validate(
    {
        "title": "Beef Stew",
        "description": "Slow cooked and hearty",
        "ingredients": ["beef chuck", "carrots", "potatoes"],
        "instructions": ["Brown the beef.", "Add vegetables and stew for two hours."],
        "difficulty": "medium",
    }
)

CHICKEN_SOUP = Recipe.model_validate(
    {
        "title": "Chicken Noodle Soup",
        "description": "Comforting soup",
        "ingredients": ["chicken breast", "egg noodles", "celery"],
        "instructions": ["Poach the chicken.", "Add noodles."],
    }
)


def seed_recipes(db_path: Path, *, with_embeddings: bool, embeddings: dict[str, list[float]] | None = None):
    """Write the three sample recipes for ``alice`` plus one for ``bob``."""
    embeddings = embeddings or {}
    conn = sqlite3.connect(str(db_path))
    create_tables(conn, with_embeddings=with_embeddings)
    for recipe_id, recipe in (("r1", CHICKEN_CURRY), ("r2", BEEF_STEW), ("r3", CHICKEN_SOUP)):
        index_recipe(
            conn,
            recipe,
            "alice",
            recipe_id=recipe_id,
            embedding=embeddings.get(recipe_id) if with_embeddings else None,
        )
    index_recipe(conn, CHICKEN_CURRY, "bob", recipe_id="bob-1")
    conn.close()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    """Settings that never read the real .env; auth disabled."""
    return Settings(
        _env_file=None,
        openrouter_api_key="test-key",
        chat_db_path=tmp_path / "chat.sqlite",
        recipes_db_path=tmp_path / "recipes.sqlite",
        auth_enabled=False,
        webhook_enabled=False,
        n8n_webhook_url=None,
    )


@pytest.fixture()
def store(tmp_path: Path) -> ConversationStore:
    """A ConversationStore connected to a temp database."""
    svc = ConversationStore(db_path=tmp_path / "chat.sqlite")
    svc.connect()
    yield svc
    svc.close()


@pytest.fixture()
def lexical_only_db(tmp_path: Path) -> Path:
    """Recipes database with full-text index but no embeddings table."""
    db_path = tmp_path / "recipes.sqlite"
    seed_recipes(db_path, with_embeddings=False)
    return db_path


@pytest.fixture()
def mock_client() -> AsyncMock:
    """A chat-completion client whose calls are all AsyncMocks."""
    client = AsyncMock()
    client.complete.return_value = "single-turn answer"
    client.complete_with_history.return_value = "history answer"
    client.complete_json.return_value = {
        "intent": "general_chat",
        "reason": "small talk",
        "confidence": 0.9,
    }
    return client

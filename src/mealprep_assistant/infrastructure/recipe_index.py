"""Recipe store schema and indexing for hybrid search.

Three tables live in the recipes database:

- ``recipes``: one row per saved recipe, including the denormalized
  ``searchable_text`` used by the lexical branch.
- ``recipes_fts``: FTS5 index over ``searchable_text`` (porter stemming).
- ``recipe_embeddings``: float32 vectors consumed by sqlite-vec distance
  functions.  Optional; without it the vector branch returns nothing.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlite_vec import serialize_float32

from mealprep_assistant.domain.models import Recipe

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS recipes (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    ingredients TEXT NOT NULL DEFAULT '[]',
    instructions TEXT NOT NULL DEFAULT '[]',
    difficulty TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    cuisine TEXT,
    prep_time INTEGER,
    cook_time INTEGER,
    servings INTEGER,
    searchable_text TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_recipes_user_id ON recipes(user_id);

CREATE VIRTUAL TABLE IF NOT EXISTS recipes_fts USING fts5(
    recipe_id UNINDEXED,
    searchable_text,
    tokenize = 'porter unicode61'
);
"""

_EMBEDDINGS_SQL = """\
CREATE TABLE IF NOT EXISTS recipe_embeddings (
    recipe_id TEXT PRIMARY KEY REFERENCES recipes(id) ON DELETE CASCADE,
    embedding BLOB NOT NULL,
    dimensions INTEGER NOT NULL,
    text_content TEXT
);
"""


def _utcnow() -> str:
    return datetime.now(UTC).isoformat()


def create_tables(conn: sqlite3.Connection, *, with_embeddings: bool = True) -> None:
    """Create the recipe tables if missing."""
    conn.executescript(_SCHEMA_SQL)
    if with_embeddings:
        conn.executescript(_EMBEDDINGS_SQL)
    conn.commit()


def build_searchable_text(recipe: Recipe) -> str:
    """Flatten a recipe into the text indexed by full-text search.

    Order: title, description, difficulty, tags, ingredients, instructions.
    """
    ingredients = []
    for ing in recipe.ingredients:
        ingredients.append(f"{ing.name} {ing.notes}" if ing.notes else ing.name)

    parts = [
        recipe.title,
        recipe.description or "",
        recipe.difficulty or "",
        " ".join(recipe.tags),
        " ".join(ingredients),
        " ".join(recipe.instructions),
    ]
    return " ".join(p for p in parts if p).strip()


def index_recipe(
    conn: sqlite3.Connection,
    recipe: Recipe,
    user_id: str,
    *,
    recipe_id: str | None = None,
    embedding: list[float] | None = None,
) -> str:
    """Insert or replace a recipe and its search entries.

    Returns:
        The recipe id.
    """
    recipe_id = recipe_id or str(uuid.uuid4())
    now = _utcnow()
    searchable_text = build_searchable_text(recipe)
    ingredients: list[dict[str, Any]] = [
        ing.model_dump(exclude_none=True) for ing in recipe.ingredients
    ]

    conn.execute(
        """
        INSERT INTO recipes (id, user_id, title, description, ingredients, instructions,
                             difficulty, tags, cuisine, prep_time, cook_time, servings,
                             searchable_text, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            title = excluded.title,
            description = excluded.description,
            ingredients = excluded.ingredients,
            instructions = excluded.instructions,
            difficulty = excluded.difficulty,
            tags = excluded.tags,
            cuisine = excluded.cuisine,
            prep_time = excluded.prep_time,
            cook_time = excluded.cook_time,
            servings = excluded.servings,
            searchable_text = excluded.searchable_text,
            updated_at = excluded.updated_at
        """,
        (
            recipe_id,
            user_id,
            recipe.title,
            recipe.description,
            json.dumps(ingredients),
            json.dumps(recipe.instructions),
            recipe.difficulty,
            json.dumps(recipe.tags),
            recipe.cuisine,
            recipe.prep_time,
            recipe.cook_time,
            recipe.servings,
            searchable_text,
            now,
            now,
        ),
    )
    conn.execute("DELETE FROM recipes_fts WHERE recipe_id = ?", (recipe_id,))
    conn.execute(
        "INSERT INTO recipes_fts (recipe_id, searchable_text) VALUES (?, ?)",
        (recipe_id, searchable_text),
    )

    if embedding is not None:
        conn.execute(
            """
            INSERT OR REPLACE INTO recipe_embeddings (recipe_id, embedding, dimensions, text_content)
            VALUES (?, ?, ?, ?)
            """,
            (recipe_id, serialize_float32(embedding), len(embedding), searchable_text),
        )

    conn.commit()
    logger.debug("Indexed recipe {} ({}) for user {}", recipe_id, recipe.title, user_id)
    return recipe_id

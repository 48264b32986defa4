"""CLI for seeding and inspecting the recipe search index."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from mealprep_assistant.config import get_settings
from mealprep_assistant.domain.models import Recipe, SearchType
from mealprep_assistant.infrastructure.embedding_client import OpenAIEmbeddingClient
from mealprep_assistant.infrastructure.recipe_index import build_searchable_text, create_tables, index_recipe
from mealprep_assistant.infrastructure.retrieval_service import HybridRetrievalService
from mealprep_assistant.logging_config import setup_logging


def _db_path(db: str | None) -> Path:
    return Path(db) if db else get_settings().recipes_db_path


@click.group()
def cli():
    """Recipe index tools for the meal-prep assistant."""
    setup_logging(level=get_settings().log_level)


@cli.command()
@click.argument("recipes_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--user-id", required=True, help="Owner of the loaded recipes.")
@click.option("--db", default=None, help="Recipes database (defaults to RECIPES_DB_PATH).")
@click.option(
    "--no-embeddings",
    is_flag=True,
    help="Skip vector embeddings; only the full-text index is built.",
)
def load(recipes_file: str, user_id: str, db: str | None, no_embeddings: bool):
    """Load recipes from a JSON array into the search index."""
    db_path = _db_path(db)
    raw = json.loads(Path(recipes_file).read_text(encoding="utf-8"))
    if isinstance(raw, dict):
        raw = raw.get("recipes", [raw])

    recipes: list[tuple[str | None, Recipe]] = []
    for i, item in enumerate(raw, 1):
        try:
            recipes.append((item.get("id"), Recipe.model_validate(item)))
        except ValidationError as exc:
            click.echo(f"  ✗ Skipping entry {i}: {exc.error_count()} validation error(s)", err=True)
    click.echo(f"Validated {len(recipes)} of {len(raw)} recipe(s)")

    embeddings: list[list[float] | None] = [None] * len(recipes)
    if not no_embeddings:
        embedder = OpenAIEmbeddingClient.from_settings(get_settings())

        async def _embed_all() -> list[list[float] | None]:
            return list(
                await asyncio.gather(*(embedder.embed(build_searchable_text(r)) for _, r in recipes))
            )

        try:
            embeddings = asyncio.run(_embed_all())
        except Exception as e:
            click.echo(f"\n✗ Embedding failed: {e}", err=True)
            sys.exit(1)

    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    try:
        create_tables(conn, with_embeddings=not no_embeddings)
        for (recipe_id, recipe), embedding in zip(recipes, embeddings, strict=True):
            new_id = index_recipe(conn, recipe, user_id, recipe_id=recipe_id, embedding=embedding)
            click.echo(f"  ✓ {recipe.title} ({new_id})")
    finally:
        conn.close()

    click.echo(f"\nIndexed {len(recipes)} recipe(s) into {db_path}")


@cli.command()
@click.option("--db", default=None, help="Recipes database (defaults to RECIPES_DB_PATH).")
def stats(db: str | None):
    """Show row counts for the recipe index tables."""
    db_path = _db_path(db)
    if not db_path.exists():
        click.echo(f"✗ No database at {db_path}", err=True)
        sys.exit(1)

    conn = sqlite3.connect(str(db_path))
    try:
        for table in ("recipes", "recipes_fts", "recipe_embeddings"):
            try:
                (count,) = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
                click.echo(f"  {table}: {count}")
            except sqlite3.OperationalError:
                click.echo(f"  {table}: (missing)")
    finally:
        conn.close()


@cli.command()
@click.argument("query")
@click.option("--user-id", default=None, help="Restrict to one owner.")
@click.option(
    "--type",
    "search_type",
    type=click.Choice([t.value for t in SearchType]),
    default=SearchType.HYBRID.value,
    show_default=True,
)
@click.option("--limit", default=10, show_default=True)
@click.option("--db", default=None, help="Recipes database (defaults to RECIPES_DB_PATH).")
def search(query: str, user_id: str | None, search_type: str, limit: int, db: str | None):
    """Run a search against the index and print the scores."""
    settings = get_settings()
    retrieval = HybridRetrievalService(
        _db_path(db),
        OpenAIEmbeddingClient.from_settings(settings),
        similarity_threshold=settings.similarity_threshold,
        vector_weight=settings.vector_weight,
        lexical_weight=settings.lexical_weight,
    )
    results = asyncio.run(retrieval.search(query, user_id, limit=limit, search_type=SearchType(search_type)))
    if not results:
        click.echo("No results")
        return
    for i, r in enumerate(results, 1):
        click.echo(
            f"{i:>2}. {r.title}  combined={r.combined_score:.3f} "
            f"similarity={r.similarity_score:.3f} rank={r.rank_score:.3f}"
        )


if __name__ == "__main__":
    cli()

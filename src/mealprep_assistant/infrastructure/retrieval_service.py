"""Hybrid recipe retrieval: sqlite-vec cosine similarity plus FTS5 bm25.

Both branches read the recipes database written by ``recipe_index``.  A
branch whose table, extension or embedding call is unavailable degrades to
an empty list; the other branch still answers.
"""

from __future__ import annotations

import asyncio
import json
import re
import sqlite3
from pathlib import Path

import sqlite_vec
from loguru import logger
from sqlite_vec import serialize_float32

from mealprep_assistant.application.exceptions import RetrievalBranchUnavailable
from mealprep_assistant.domain.models import SearchResult, SearchType
from mealprep_assistant.domain.protocols import IEmbeddingClient
from mealprep_assistant.domain.retrieval import (
    DEFAULT_SEARCH_LIMIT,
    LEXICAL_WEIGHT,
    SIMILARITY_THRESHOLD,
    SUBSTRING_MATCH_RANK,
    VECTOR_WEIGHT,
    merge_hybrid_results,
    normalize_bm25,
)

_TOKEN = re.compile(r"\w+", re.UNICODE)

_RECIPE_COLUMNS = "r.id, r.title, r.description, r.ingredients, r.instructions"


def fts_query(text: str) -> str | None:
    """Build an FTS5 MATCH expression from free text.

    Each token is quoted so user punctuation cannot inject FTS syntax;
    tokens are OR-ed so partial matches still rank.
    """
    tokens = [t for t in _TOKEN.findall(text.lower()) if len(t) > 1]
    if not tokens:
        return None
    return " OR ".join(f'"{t}"' for t in dict.fromkeys(tokens))


def _loads(value: str | None) -> list:
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return []
    return parsed if isinstance(parsed, list) else []


def _row_to_result(row: sqlite3.Row, *, similarity: float = 0.0, rank: float = 0.0) -> SearchResult:
    return SearchResult(
        recipe_id=row["id"],
        title=row["title"],
        description=row["description"],
        ingredients=_loads(row["ingredients"]),
        instructions=_loads(row["instructions"]),
        similarity_score=similarity,
        rank_score=rank,
        searchable_text=row["searchable_text"] or "",
    )


class HybridRetrievalService:
    """Runs the vector and lexical branches concurrently and merges them.

    Each branch opens its own short-lived connection inside a worker thread,
    so the two never share a SQLite handle.
    """

    def __init__(
        self,
        db_path: Path,
        embedding_client: IEmbeddingClient,
        *,
        similarity_threshold: float = SIMILARITY_THRESHOLD,
        vector_weight: float = VECTOR_WEIGHT,
        lexical_weight: float = LEXICAL_WEIGHT,
    ) -> None:
        self.db_path = db_path
        self.embedding_client = embedding_client
        self.similarity_threshold = similarity_threshold
        self.vector_weight = vector_weight
        self.lexical_weight = lexical_weight

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def _connect(self, *, with_vec: bool = False) -> sqlite3.Connection:
        if not self.db_path.exists():
            raise RetrievalBranchUnavailable(f"Recipe database not found at {self.db_path}")
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        if with_vec:
            try:
                conn.enable_load_extension(True)
                sqlite_vec.load(conn)
                conn.enable_load_extension(False)
            except (AttributeError, sqlite3.OperationalError) as exc:
                conn.close()
                raise RetrievalBranchUnavailable(f"sqlite-vec could not be loaded: {exc}") from exc
        return conn

    # ------------------------------------------------------------------
    # Vector branch
    # ------------------------------------------------------------------

    def _vector_search(self, embedding: list[float], user_id: str | None, limit: int) -> list[SearchResult]:
        """Cosine similarity over ``recipe_embeddings``, thresholded and limited."""
        conn = self._connect(with_vec=True)
        try:
            rows = conn.execute(
                f"""
                SELECT * FROM (
                    SELECT {_RECIPE_COLUMNS},
                           COALESCE(e.text_content, r.searchable_text) AS searchable_text,
                           1.0 - vec_distance_cosine(e.embedding, ?) AS similarity
                    FROM recipe_embeddings e
                    JOIN recipes r ON r.id = e.recipe_id
                    WHERE (? IS NULL OR r.user_id = ?)
                      AND e.dimensions = ?
                )
                WHERE similarity >= ?
                ORDER BY similarity DESC
                LIMIT ?
                """,
                (
                    serialize_float32(embedding),
                    user_id,
                    user_id,
                    len(embedding),
                    self.similarity_threshold,
                    limit,
                ),
            ).fetchall()
        except sqlite3.Error as exc:
            raise RetrievalBranchUnavailable(f"Vector search failed: {exc}") from exc
        finally:
            conn.close()
        return [_row_to_result(row, similarity=float(row["similarity"])) for row in rows]

    async def _vector_branch(self, query: str, user_id: str | None, limit: int) -> list[SearchResult]:
        try:
            embedding = await self.embedding_client.embed(query)
            return await asyncio.to_thread(self._vector_search, embedding, user_id, limit)
        except Exception as exc:
            logger.warning("Vector branch unavailable, continuing without it | {}", exc)
            return []

    # ------------------------------------------------------------------
    # Lexical branch
    # ------------------------------------------------------------------

    def _fts_search(
        self, conn: sqlite3.Connection, query: str, user_id: str | None, limit: int
    ) -> list[SearchResult]:
        """bm25 ranking over ``recipes_fts``. Raises on a missing table."""
        match = fts_query(query)
        if match is None:
            return []
        rows = conn.execute(
            f"""
            SELECT {_RECIPE_COLUMNS}, r.searchable_text,
                   bm25(recipes_fts) AS bm25_score
            FROM recipes_fts
            JOIN recipes r ON r.id = recipes_fts.recipe_id
            WHERE recipes_fts MATCH ?
              AND (? IS NULL OR r.user_id = ?)
            ORDER BY bm25_score
            LIMIT ?
            """,
            (match, user_id, user_id, limit),
        ).fetchall()
        return [_row_to_result(row, rank=normalize_bm25(row["bm25_score"])) for row in rows]

    def _substring_search(
        self, conn: sqlite3.Connection, query: str, user_id: str | None, limit: int
    ) -> list[SearchResult]:
        """Case-insensitive substring match on title, description and searchable text."""
        escaped = query.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        rows = conn.execute(
            f"""
            SELECT {_RECIPE_COLUMNS}, r.searchable_text
            FROM recipes r
            WHERE (? IS NULL OR r.user_id = ?)
              AND (lower(r.title) LIKE ? ESCAPE '\\'
                   OR lower(COALESCE(r.description, '')) LIKE ? ESCAPE '\\'
                   OR lower(r.searchable_text) LIKE ? ESCAPE '\\')
            ORDER BY r.updated_at DESC
            LIMIT ?
            """,
            (user_id, user_id, pattern, pattern, pattern, limit),
        ).fetchall()
        return [_row_to_result(row, rank=SUBSTRING_MATCH_RANK) for row in rows]

    def _lexical_search(self, query: str, user_id: str | None, limit: int) -> list[SearchResult]:
        conn = self._connect()
        try:
            try:
                results = self._fts_search(conn, query, user_id, limit)
            except sqlite3.Error as exc:
                logger.warning("Full-text search failed, using substring match | {}", exc)
                results = []
            if results:
                return results
            try:
                return self._substring_search(conn, query, user_id, limit)
            except sqlite3.Error as exc:
                raise RetrievalBranchUnavailable(f"Lexical search failed: {exc}") from exc
        finally:
            conn.close()

    async def _lexical_branch(self, query: str, user_id: str | None, limit: int) -> list[SearchResult]:
        try:
            return await asyncio.to_thread(self._lexical_search, query, user_id, limit)
        except RetrievalBranchUnavailable as exc:
            logger.warning("Lexical branch unavailable, continuing without it | {}", exc)
            return []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        user_id: str | None = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
        search_type: SearchType = SearchType.HYBRID,
    ) -> list[SearchResult]:
        """Search a user's recipes.

        Args:
            query: Free-text query.
            user_id: Restrict to this owner; ``None`` searches every recipe.
            limit: Maximum number of results.
            search_type: ``semantic`` (vector only), ``text`` (lexical only)
                or ``hybrid`` (both, merged).

        Returns:
            Deduplicated results ordered best first.  Empty when nothing
            matches or both branches are unavailable.
        """
        if not query.strip() or limit <= 0:
            return []

        match search_type:
            case SearchType.SEMANTIC:
                results = await self._vector_branch(query, user_id, limit)
                for r in results:
                    r.combined_score = r.similarity_score
            case SearchType.TEXT:
                results = await self._lexical_branch(query, user_id, limit)
                for r in results:
                    r.combined_score = r.rank_score
            case SearchType.HYBRID:
                vector_results, lexical_results = await asyncio.gather(
                    self._vector_branch(query, user_id, limit),
                    self._lexical_branch(query, user_id, limit),
                )
                results = merge_hybrid_results(
                    vector_results,
                    lexical_results,
                    limit,
                    vector_weight=self.vector_weight,
                    lexical_weight=self.lexical_weight,
                )
                logger.debug(
                    "Hybrid search | vector={} lexical={} merged={}",
                    len(vector_results),
                    len(lexical_results),
                    len(results),
                )

        logger.info(
            "Recipe search | type={} user={} results={} query={}",
            search_type.value,
            user_id,
            len(results),
            query[:60],
        )
        return results

"""Hybrid retrieval scoring: named constants and the branch-merge function."""

from __future__ import annotations

from dataclasses import replace

from mealprep_assistant.domain.models import SearchResult

SIMILARITY_THRESHOLD = 0.5
VECTOR_WEIGHT = 0.7
LEXICAL_WEIGHT = 0.3
DEFAULT_SEARCH_LIMIT = 10

# Rank assigned to substring-only hits when the full-text index has no match.
SUBSTRING_MATCH_RANK = 0.1


def normalize_bm25(score: float) -> float:
    """Map an FTS5 ``bm25()`` value (more negative is better) into [0, 1)."""
    magnitude = abs(score)
    return magnitude / (1.0 + magnitude)


def merge_hybrid_results(
    vector_results: list[SearchResult],
    lexical_results: list[SearchResult],
    limit: int,
    vector_weight: float = VECTOR_WEIGHT,
    lexical_weight: float = LEXICAL_WEIGHT,
) -> list[SearchResult]:
    """Combine the two branches into one deduplicated, ranked list.

    Each recipe's ``combined_score`` is ``vector_weight * similarity +
    lexical_weight * rank``; a recipe missing from one branch contributes
    zero for that component. Sorting is stable, so ties keep branch order
    (vector hits first, then lexical-only hits).

    Args:
        vector_results: Hits from the vector branch (``similarity_score`` set).
        lexical_results: Hits from the lexical branch (``rank_score`` set).
        limit: Maximum number of results to return.

    Returns:
        Merged results ordered by ``combined_score`` descending.
    """
    merged: dict[str, SearchResult] = {}

    for hit in vector_results:
        if hit.recipe_id in merged:
            continue
        merged[hit.recipe_id] = replace(hit, rank_score=0.0)

    for hit in lexical_results:
        existing = merged.get(hit.recipe_id)
        if existing is None:
            merged[hit.recipe_id] = replace(hit, similarity_score=0.0)
        elif existing.rank_score == 0.0:
            existing.rank_score = hit.rank_score
            if not existing.searchable_text:
                existing.searchable_text = hit.searchable_text

    for result in merged.values():
        result.combined_score = (
            vector_weight * result.similarity_score + lexical_weight * result.rank_score
        )

    ranked = sorted(merged.values(), key=lambda r: r.combined_score, reverse=True)
    return ranked[:limit]

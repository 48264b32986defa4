"""Recipe search route backed by the hybrid retrieval engine."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from loguru import logger

from mealprep_assistant.infrastructure.retrieval_service import HybridRetrievalService
from mealprep_assistant.presentation.auth import AuthenticatedUser, get_current_user, has_internal_key
from mealprep_assistant.presentation.schemas import SearchRequest, SearchResponse, SearchResultItem

router = APIRouter(tags=["search"])


@router.post("/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    raw_request: Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Search the caller's saved recipes.

    ``userId`` in the body is only honoured for internal callers that send
    the configured ``X-Internal-Key``; everyone else searches their own
    recipes.
    """
    retrieval: HybridRetrievalService = raw_request.app.state.retrieval

    query = request.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Query is required")

    user_id = current_user.user_id
    if request.user_id and request.user_id != current_user.user_id:
        if not has_internal_key(raw_request):
            logger.warning("Ignoring userId override without internal key | caller={}", current_user.user_id)
        else:
            user_id = request.user_id

    results = await retrieval.search(query, user_id, limit=request.limit, search_type=request.search_type)
    return SearchResponse(
        results=[SearchResultItem.from_result(r) for r in results],
        total=len(results),
        search_type=request.search_type,
        query=query,
    )

"""Search endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from brain_search.routes.deps import get_runtime
from brain_search.runtime import Runtime
from brain_search.search.models import SearchArgs, SearchHit

router = APIRouter()


@router.post("/search", response_model=list[SearchHit], response_model_exclude_none=True)
async def search_endpoint(args: SearchArgs, runtime: Runtime = Depends(get_runtime)) -> list[SearchHit]:
    """Search notes semantically, by keyword, or both, with optional wikilink expansion."""
    return await runtime.search_service.search(args)

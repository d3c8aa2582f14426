"""Pydantic models for search arguments and hits."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from brain_search.errors import SearchValidationError


class SearchMode(str, Enum):
    AUTO = "auto"
    SEMANTIC = "semantic"
    KEYWORD = "keyword"


class SearchSource(str, Enum):
    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    RELATED = "related"


class SearchArgs(BaseModel):
    """Arguments of a search call."""
    query: str = Field(..., min_length=1, description="Search query text")
    limit: int = Field(default=10, ge=1, le=100, description="Maximum results to return")
    threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Minimum similarity for semantic hits")
    mode: SearchMode = Field(default=SearchMode.AUTO, description="auto, semantic or keyword")
    depth: int = Field(default=0, ge=0, le=3, description="Wikilink hops to follow from direct hits")
    project: str | None = Field(default=None, description="Project to search (default project if unset)")
    folders: list[str] | None = Field(default=None, description="Only return notes under these folders")
    full_context: bool = Field(default=False, description="Attach note text to each hit")

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query must not be blank")
        return v


class SearchHit(BaseModel):
    """One note in a search result list."""
    permalink: str
    title: str
    similarity_score: float
    snippet: str = ""
    source: SearchSource
    depth: int | None = None
    full_content: str | None = None


def parse_search_args(data: dict[str, Any]) -> SearchArgs:
    """Validate raw arguments.

    Raises:
        SearchValidationError: Bad or out-of-range arguments
    """
    try:
        return SearchArgs.model_validate(data)
    except ValidationError as e:
        problems = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise SearchValidationError(
            "Invalid search arguments: " + "; ".join(f"{p['field']}: {p['message']}" for p in problems),
            {"errors": problems},
        ) from e

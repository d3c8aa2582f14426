"""Embedding client for an Ollama-compatible model server.

nomic-embed-text expects every input to carry a task prefix: documents are
embedded as ``search_document: <text>`` and queries as
``search_query: <text>``. Mixing them up silently degrades retrieval, so the
prefix is applied here and nowhere else.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Protocol, Sequence

import httpx
from pydantic import BaseModel, ValidationError

from brain_search.errors import EmbeddingDimensionError, EmbeddingUnavailableError
from brain_search.store.schema import EMBEDDING_DIM

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "nomic-embed-text"
DEFAULT_TIMEOUT_S = 60.0


class TaskType(str, Enum):
    """Task prefix understood by the embedding model."""
    SEARCH_DOCUMENT = "search_document"
    SEARCH_QUERY = "search_query"


def prefix_text(text: str, task_type: TaskType | str) -> str:
    """Return the prompt actually sent to the model."""
    return f"{TaskType(task_type).value}: {text}"


class EmbeddingRequest(BaseModel):
    """Body of POST /api/embeddings."""
    model: str
    prompt: str


class EmbeddingResponse(BaseModel):
    """Response of POST /api/embeddings."""
    embedding: list[float]


class EmbeddingClient(Protocol):
    """Anything that turns text into EMBEDDING_DIM-length vectors."""

    async def embed(
        self,
        text: str,
        task_type: TaskType | str = TaskType.SEARCH_DOCUMENT,
    ) -> list[float]: ...

    async def embed_batch(
        self,
        texts: Sequence[str],
        task_type: TaskType | str = TaskType.SEARCH_DOCUMENT,
    ) -> list[list[float]]: ...


class OllamaEmbeddingClient:
    """Async client for ``/api/embeddings``."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = DEFAULT_TIMEOUT_S,
        dimension: int = EMBEDDING_DIM,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.dimension = dimension
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy-create the HTTP client on first use."""
        if self._client is None:
            kwargs: dict[str, Any] = {"base_url": self.base_url, "timeout": self.timeout}
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._client = httpx.AsyncClient(**kwargs)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def embed(
        self,
        text: str,
        task_type: TaskType | str = TaskType.SEARCH_DOCUMENT,
    ) -> list[float]:
        """Embed one text.

        Raises:
            EmbeddingUnavailableError: Transport failure, timeout, non-2xx
                status, or a body that is not ``{"embedding": [...]}``
            EmbeddingDimensionError: The vector has the wrong length
        """
        payload = EmbeddingRequest(model=self.model, prompt=prefix_text(text, task_type))

        try:
            response = await self._get_client().post(
                "/api/embeddings", json=payload.model_dump()
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise EmbeddingUnavailableError(
                f"Embedding server returned {e.response.status_code}",
                {"status": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise EmbeddingUnavailableError(
                f"Cannot reach embedding server at {self.base_url}: {e!r}"
            ) from e

        try:
            parsed = EmbeddingResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise EmbeddingUnavailableError("Malformed embedding response") from e

        if len(parsed.embedding) != self.dimension:
            raise EmbeddingDimensionError(self.dimension, len(parsed.embedding), "Embedding")
        return parsed.embedding

    async def embed_batch(
        self,
        texts: Sequence[str],
        task_type: TaskType | str = TaskType.SEARCH_DOCUMENT,
    ) -> list[list[float]]:
        """Embed several texts, one request each, preserving input order.

        The first failure aborts the batch.
        """
        vectors = []
        for text in texts:
            vectors.append(await self.embed(text, task_type))
        if texts:
            logger.debug("Embedded %d texts as %s", len(texts), TaskType(task_type).value)
        return vectors

    async def list_models(self) -> list[str]:
        """Names of models installed on the server (GET /api/tags)."""
        try:
            response = await self._get_client().get("/api/tags", timeout=5.0)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise EmbeddingUnavailableError(
                f"Cannot reach embedding server at {self.base_url}: {e!r}"
            ) from e
        try:
            models = response.json().get("models", [])
        except ValueError as e:
            raise EmbeddingUnavailableError("Malformed /api/tags response") from e
        return [m.get("name", "") for m in models]

"""Request dependencies shared by the route modules."""

from __future__ import annotations

from fastapi import HTTPException, Request

from brain_search.runtime import Runtime


def get_runtime(request: Request) -> Runtime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="brain-search is still starting")
    return runtime

# docplanner/api/admin/health.py
"""
Health endpoints for shallow and deep readiness checks.
"""
from fastapi import APIRouter, Depends, HTTPException
from starlette.status import HTTP_200_OK, HTTP_503_SERVICE_UNAVAILABLE

from docplanner import __version__
from docplanner.api.dependencies import get_engine
from docplanner.integrations.engine_client import EngineClient

router = APIRouter(prefix="/admin", tags=["health"])


@router.get("/health", status_code=HTTP_200_OK)
async def health() -> dict:
    """Shallow health endpoint."""
    return {"status": "ok", "version": __version__}


@router.get("/health/deep", status_code=HTTP_200_OK)
async def health_deep(engine: EngineClient = Depends(get_engine)) -> dict:
    """
    Deep health endpoint checking that the Document Engine answers.

    Returns 503 when the engine is unreachable or rejects the token.
    """
    engine_health = await engine.health_check()
    if not engine_health.get("healthy"):
        raise HTTPException(
            status_code=HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Document Engine not ready: {engine_health.get('message')}",
        )
    return {"status": "ready", "version": __version__, "document_engine": engine_health}

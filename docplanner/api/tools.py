# docplanner/api/tools.py
"""
HTTP surface for the tool registry.

Tool failures (bad input, engine errors, partial completion) are returned
as `success=false` payloads with status 200; only an unknown tool name is
an HTTP error.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from starlette.status import HTTP_404_NOT_FOUND

from docplanner.api.dependencies import get_engine
from docplanner.integrations.engine_client import EngineClient
from docplanner.monitoring.logger import log
from docplanner.tools.registry import get_tool, get_tool_info, list_tools

router = APIRouter(prefix="/tools", tags=["tools"])


@router.get("")
async def tools_index() -> dict:
    return {"tools": [get_tool_info(name) for name in list_tools()]}


@router.get("/{name}")
async def tool_info(name: str) -> dict:
    try:
        return get_tool_info(name)
    except ValueError as exc:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail=str(exc))


@router.post("/{name}")
async def call_tool(
    name: str,
    params: Optional[Dict[str, Any]] = Body(default=None),
    engine: EngineClient = Depends(get_engine),
) -> dict:
    try:
        handler = get_tool(name)
    except ValueError as exc:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail=str(exc))

    log("INFO", f"Tool call received: {name}", module="api.tools", tool=name)
    result = await handler(engine, params or {})
    return result.to_dict()

# docplanner/api/dependencies.py
"""
FastAPI dependencies shared by the routers.
"""
from typing import AsyncIterator

from docplanner.integrations.engine_client import EngineClient


async def get_engine() -> AsyncIterator[EngineClient]:
    """One engine client per request; it opens a session per engine call."""
    yield EngineClient()

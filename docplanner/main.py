# docplanner/main.py
"""
Main FastAPI app exposing the document tools, with monitoring integration
and health endpoints.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from uuid import uuid4
import traceback

from docplanner import __version__
from docplanner.monitoring.logger import log
from docplanner.monitoring.slack_alerts import send_slack_alert
from docplanner.monitoring.context import set_request_context
from docplanner.api.admin.health import router as health_router
from docplanner.api.tools import router as tools_router

app = FastAPI(title="Document Operation Planner", version=__version__)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    request.state.request_id = request_id
    set_request_context(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", None)
    tb = traceback.format_exc()
    log(
        "ERROR",
        f"Unhandled exception: {exc}",
        module="main",
        request_id=request_id
    )
    await send_slack_alert(
        message=f"Critical error: {exc}",
        context={"path": request.url.path, "traceback": tb},
        severity="CRITICAL",
        module="main",
        request_id=request_id
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "request_id": request_id,
            "detail": "An unexpected error occurred."
        }
    )

# Mount routers
app.include_router(health_router)
app.include_router(tools_router)

# Logging initialization
log("INFO", "Document Operation Planner started", module="main")

# docplanner/tools/health.py
"""
health_check tool: planner status plus Document Engine reachability.
"""
import time
from datetime import datetime, timezone
from urllib.parse import urlparse

from pydantic import BaseModel

from docplanner import __version__
from docplanner.config import settings
from docplanner.tools.base import ToolResult, tool_handler

_STARTED = time.monotonic()


class HealthCheckInput(BaseModel):
    pass


def mask_url(url: str) -> str:
    """Drop credentials and path from a URL before showing it."""
    parsed = urlparse(url)
    host = parsed.hostname or ""
    port = f":{parsed.port}" if parsed.port else ""
    return f"{parsed.scheme}://{host}{port}" if parsed.scheme else url


def format_uptime(seconds: int) -> str:
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}m {secs}s"


@tool_handler("health_check", HealthCheckInput, "Error Checking Health", "check health")
async def health_check(engine, data: HealthCheckInput) -> ToolResult:
    started = time.monotonic()
    engine_health = await engine.health_check()
    status = "operational" if engine_health.get("healthy") else "degraded"
    elapsed_ms = int((time.monotonic() - started) * 1000)

    markdown = "# Health Check Results\n\n## Overall Status\n\n"
    markdown += f"- **Status**: {'Operational' if status == 'operational' else 'Degraded'}\n"
    markdown += f"- **Response Time**: {elapsed_ms}ms\n\n"
    markdown += "## Component Status\n\n"
    markdown += "- **Planner**: Operational\n"
    markdown += f"- **Document Engine API**: {'Operational' if engine_health.get('healthy') else 'Error'}\n"
    if not engine_health.get("healthy"):
        markdown += f"  - Error: {engine_health.get('message')}\n"
    markdown += "\n## Server Information\n\n"
    markdown += f"- **Version**: {__version__}\n"
    markdown += f"- **Environment**: {settings.ENVIRONMENT}\n"
    markdown += f"- **Uptime**: {format_uptime(int(time.monotonic() - _STARTED))}\n"
    markdown += f"- **Timestamp**: {datetime.now(timezone.utc).isoformat()}\n"
    markdown += "\n## Configuration\n\n"
    markdown += f"- **Document Engine URL**: {mask_url(settings.DOCUMENT_ENGINE_BASE_URL)}\n"
    markdown += f"- **Connection Timeout**: {settings.CONNECTION_TIMEOUT:g}s\n"
    markdown += f"- **Log Level**: {settings.LOG_LEVEL}\n"

    # A degraded engine is still a successful health report
    return ToolResult(success=True, markdown=markdown, details={"status": status, "engine": engine_health})

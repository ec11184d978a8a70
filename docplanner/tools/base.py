# docplanner/tools/base.py
"""
Shared plumbing for tool handlers.

Every tool is an `async def tool(engine, params: dict) -> ToolResult`.
Handlers never raise: input validation failures, engine errors and partial
completions all come back as `ToolResult(success=False)` with a Markdown
report, so an agent can read what went wrong and retry.
"""
import functools
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

import pydantic
from pydantic import BaseModel

from docplanner.core.errors import PartialCompletionError, PlannerError, ValidationError
from docplanner.core.models import DocumentFingerprint
from docplanner.monitoring.context import bind_tool_context, reset_tool_context
from docplanner.monitoring.logger import log
from docplanner.monitoring.slack_alerts import send_slack_alert


@dataclass
class ToolResult:
    """Result of a tool invocation."""
    success: bool
    markdown: str
    details: Dict[str, Any] = field(default_factory=dict)
    error: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "markdown": self.markdown,
            "details": self.details,
            "error": self.error,
        }


ToolHandler = Callable[[Any, Dict[str, Any]], Awaitable[ToolResult]]


class FingerprintInput(BaseModel):
    """Input shared by tools operating on one document."""
    document_fingerprint: DocumentFingerprint


def fingerprint_lines(fingerprint: Optional[DocumentFingerprint], bullet: str = "") -> str:
    """`Document ID` / `Layer` lines in the report style used by every tool."""
    if fingerprint is None:
        return ""
    lines = f"{bullet}**Document ID:** {fingerprint.document_id}  \n"
    if fingerprint.layer:
        lines += f"{bullet}**Layer:** {fingerprint.layer}  \n"
    return lines


def parse_input(model: Type[BaseModel], params: Dict[str, Any]) -> BaseModel:
    """Validate raw tool params; pydantic errors become ValidationError."""
    try:
        return model.model_validate(params or {})
    except pydantic.ValidationError as exc:
        problems = []
        for err in exc.errors():
            where = ".".join(str(p) for p in err.get("loc", ())) or "input"
            problems.append(f"{where}: {err.get('msg')}")
        first = exc.errors()[0].get("loc", ()) if exc.errors() else ()
        raise ValidationError(
            "Invalid input: " + "; ".join(problems),
            field=str(first[0]) if first else None,
        ) from exc


def _raw_fingerprint(params: Dict[str, Any]) -> Optional[DocumentFingerprint]:
    raw = (params or {}).get("document_fingerprint")
    if not isinstance(raw, dict):
        return None
    try:
        return DocumentFingerprint.model_validate(raw)
    except pydantic.ValidationError:
        return None


def error_result(
    title: str,
    action: str,
    exc: Exception,
    fingerprint: Optional[DocumentFingerprint] = None,
    tips: Optional[List[str]] = None,
) -> ToolResult:
    """Markdown failure report for a tool."""
    markdown = f"# {title}\n\n"
    markdown += f"An error occurred while trying to {action}: {exc}\n\n"
    markdown += fingerprint_lines(fingerprint)

    report = exc.report if isinstance(exc, PartialCompletionError) else None
    if report is not None:
        markdown += "\n## Partial Completion\n\n"
        markdown += f"- **Stopped at step:** {report.failed_step.name if report.failed_step else 'unknown'}\n"
        markdown += f"- **Completed steps:** {', '.join(s.name for s in report.completed_steps) or 'None'}\n"
        markdown += f"- **Documents already created:** {', '.join(report.created) or 'None'}\n"
        markdown += "\nNo changes were rolled back. Review or delete the documents listed above.\n"

    if tips:
        markdown += "\n## Troubleshooting Tips\n"
        for i, tip in enumerate(tips, 1):
            markdown += f"{i}. {tip}\n"
        markdown += "\nPlease check your parameters and try again."

    if isinstance(exc, PlannerError):
        error = exc.to_dict()
    else:
        error = {"kind": "internal_error", "message": str(exc)}
    return ToolResult(success=False, markdown=markdown, error=error)


def tool_handler(
    name: str,
    input_model: Type[BaseModel],
    error_title: str,
    action: str,
    tips: Optional[List[str]] = None,
):
    """
    Decorate `async def impl(engine, data)` into a tool handler.

    The decorated handler validates `params` with `input_model`, scopes the
    logging context to the call and converts every failure into a ToolResult.

    Example:
        @tool_handler("duplicate_document", DuplicateDocumentInput,
                      "Error Duplicating Document", "duplicate the document")
        async def duplicate_document(engine, data): ...
    """
    def decorator(impl: Callable[[Any, Any], Awaitable[ToolResult]]) -> ToolHandler:
        @functools.wraps(impl)
        async def handler(engine, params: Dict[str, Any]) -> ToolResult:
            fingerprint = _raw_fingerprint(params)
            tokens = bind_tool_context(name, fingerprint.document_id if fingerprint else None)
            try:
                return await _run(engine, params, fingerprint)
            finally:
                reset_tool_context(tokens)

        async def _run(engine, params: Dict[str, Any], fingerprint: Optional[DocumentFingerprint]) -> ToolResult:
            try:
                data = parse_input(input_model, params)
                result = await impl(engine, data)
                log("INFO", f"Tool {name} completed", module="tools", success=result.success)
                return result
            except PartialCompletionError as exc:
                log("ERROR", f"Tool {name} partially completed: {exc}", module="tools",
                    created=exc.report.created)
                await send_slack_alert(
                    message=f"{name} stopped part-way: {exc}",
                    context=exc.report.to_dict(),
                    severity="WARNING",
                    module="tools",
                )
                return error_result(error_title, action, exc, fingerprint, tips)
            except PlannerError as exc:
                log("WARNING", f"Tool {name} failed: {exc}", module="tools", kind=exc.kind)
                return error_result(error_title, action, exc, fingerprint, tips)
            except Exception as exc:
                log("ERROR", f"Tool {name} crashed: {exc!r}", module="tools")
                return error_result(error_title, action, exc, fingerprint, tips)

        handler.tool_name = name
        handler.input_model = input_model
        return handler

    return decorator

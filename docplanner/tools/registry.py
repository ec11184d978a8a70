# docplanner/tools/registry.py
"""
Tool registry.

Maps tool names to handlers so the HTTP surface (or any other caller) can
dispatch by name without importing individual tool modules.
"""
from typing import Any, Dict

from docplanner.monitoring.logger import log
from docplanner.tools import annotations, discovery, editing, extraction, forms, health, redactions
from docplanner.tools.base import ToolHandler, ToolResult


# Registry of available tools
TOOL_REGISTRY: Dict[str, ToolHandler] = {
    "list_documents": discovery.list_documents,
    "read_document_info": discovery.read_document_info,
    "extract_text": extraction.extract_text,
    "search": extraction.search,
    "render_document_page": extraction.render_document_page,
    "extract_tables": extraction.extract_tables,
    "extract_key_value_pairs": extraction.extract_key_value_pairs,
    "add_annotation": annotations.add_annotation,
    "read_annotations": annotations.read_annotations,
    "delete_annotations": annotations.delete_annotations,
    "create_redaction": redactions.create_redaction,
    "apply_redactions": redactions.apply_redactions,
    "add_new_page": editing.add_new_page,
    "rotate_pages": editing.rotate_pages,
    "split_document": editing.split_document,
    "merge_document_pages": editing.merge_document_pages,
    "duplicate_document": editing.duplicate_document,
    "add_watermark": editing.add_watermark,
    "extract_form_data": forms.extract_form_data,
    "fill_form_fields": forms.fill_form_fields,
    "health_check": health.health_check,
}


def register_tool(name: str, handler: ToolHandler) -> None:
    """
    Register a new tool handler.

    Args:
        name: Tool identifier (e.g., "extract_tables")
        handler: Coroutine function `(engine, params) -> ToolResult`

    Raises:
        ValueError: If handler is not callable
    """
    if not callable(handler):
        raise ValueError(f"Tool handler must be callable, got {handler!r}")

    TOOL_REGISTRY[name] = handler
    log("INFO", f"Registered tool: {name}", module="registry")


def get_tool(name: str) -> ToolHandler:
    """
    Get tool handler by name.

    Raises:
        ValueError: If the tool is unknown
    """
    handler = TOOL_REGISTRY.get(name.strip())
    if handler is None:
        raise ValueError(
            f"Unknown tool: '{name}'. "
            f"Available tools: {list(TOOL_REGISTRY.keys())}"
        )
    return handler


def list_tools() -> list[str]:
    """List all registered tool names."""
    return list(TOOL_REGISTRY.keys())


def get_tool_info(name: str) -> Dict[str, Any]:
    """
    Get information about a tool, including its input JSON schema.

    Raises:
        ValueError: If the tool is unknown
    """
    handler = get_tool(name)
    input_model = getattr(handler, "input_model", None)
    doc = (handler.__doc__ or "").strip()
    return {
        "name": name,
        "module": handler.__module__,
        "description": doc.splitlines()[0] if doc else None,
        "input_schema": input_model.model_json_schema() if input_model is not None else None,
    }


async def run_tool(name: str, engine, params: Dict[str, Any]) -> ToolResult:
    """Look up `name` and run it against `engine`."""
    handler = get_tool(name)
    return await handler(engine, params)

"""
Agent-facing tools over the Document Engine.

Each tool validates its parameters, plans the engine calls through
`docplanner.core` and returns a ToolResult with a Markdown report:
- discovery: list documents, document info
- extraction: text, search, page rendering
- annotations and redactions
- editing: pages, rotation, split, merge, duplicate, watermark
- forms
"""

from docplanner.tools.base import ToolResult
from docplanner.tools.registry import get_tool, list_tools, run_tool

__all__ = [
    "ToolResult",
    "get_tool",
    "list_tools",
    "run_tool",
]

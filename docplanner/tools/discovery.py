# docplanner/tools/discovery.py
"""
Discovery tools: list documents, read document info.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from docplanner.core.errors import EngineError, ValidationError
from docplanner.tools.base import FingerprintInput, ToolResult, fingerprint_lines, tool_handler


def format_file_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.2f} {unit}"
        value /= 1024
    return f"{size} B"


class SortField(str, Enum):
    CREATED_AT = "created_at"
    TITLE = "title"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ListDocumentsInput(BaseModel):
    limit: int = Field(10, ge=1, description="Maximum number of documents to return")
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    cursor: Optional[str] = Field(None, description="Pagination cursor for fetching next/previous page")
    title: Optional[str] = Field(None, description="Filter documents by title")
    count_remaining: bool = False


@tool_handler("list_documents", ListDocumentsInput, "Error Listing Documents", "list documents",
              tips=["Check the Document Engine connection settings"])
async def list_documents(engine, data: ListDocumentsInput) -> ToolResult:
    response = await engine.list_documents(
        page_size=data.limit,
        order_by=data.sort_by.value,
        order_direction=data.sort_order.value,
        count_remaining=data.count_remaining,
        cursor=data.cursor,
        title=data.title,
    )
    documents = response.get("data") or []
    total = response.get("document_count", len(documents))

    markdown = "# Document List\n\n"
    markdown += f"Found {total} documents"
    if data.count_remaining:
        markdown += (
            f" ({response.get('prev_document_count', 0)} before, "
            f"{response.get('next_document_count', 0)} after current page)"
        )
    markdown += ":\n\n"

    prev_cursor, next_cursor = response.get("prev_cursor"), response.get("next_cursor")
    if prev_cursor or next_cursor:
        markdown += "## Pagination\n"
        if prev_cursor:
            markdown += f"- **Previous Page Cursor:** `{prev_cursor}`\n"
        if next_cursor:
            markdown += f"- **Next Page Cursor:** `{next_cursor}`\n"
        markdown += "\n"

    listed = []
    for doc in documents:
        doc_id = doc.get("id") or doc.get("document_id")
        markdown += f"## Title: {doc.get('title') or 'Untitled Document'}\n"
        markdown += f"- **Document ID:** {doc_id}\n"
        if doc.get("createdAt"):
            markdown += f"- **Created:** {doc['createdAt']}\n"
        if doc.get("byteSize") is not None:
            markdown += f"- **Size:** {format_file_size(doc['byteSize'])}\n"
        # A layer lookup failure only affects this entry
        try:
            layers = await engine.list_layers(doc_id)
            markdown += f"- **Available Layers:** {', '.join(layers) if layers else 'None'}\n"
        except EngineError:
            layers = None
            markdown += "- **Available Layers:** Error fetching layers\n"
        markdown += "\n"
        listed.append({"id": doc_id, "title": doc.get("title"), "layers": layers})

    if not documents:
        markdown += "No documents found.\n\n"
    markdown += "---\n\n"
    markdown += "When responding to the user you should refer to the documents with their titles."

    return ToolResult(
        success=True,
        markdown=markdown,
        details={"documents": listed, "next_cursor": next_cursor, "prev_cursor": prev_cursor},
    )


class ReadDocumentInfoInput(FingerprintInput):
    include_metadata: bool = False


_METADATA_LABELS = (
    ("title", "Title"),
    ("author", "Author"),
    ("subject", "Subject"),
    ("keywords", "Keywords"),
    ("creator", "Creator"),
    ("producer", "Producer"),
    ("dateCreated", "Creation Date"),
    ("dateModified", "Modification Date"),
)

_PERMISSION_LABELS = (
    ("annotationAndForms", "Annotation and Forms"),
    ("assemble", "Assemble Document"),
    ("extract", "Extract Content"),
    ("extractAccessibility", "Extract for Accessibility"),
    ("fillForms", "Fill Forms"),
    ("modification", "Modify Document"),
    ("print", "Print"),
    ("printHighQuality", "High Quality Printing"),
)


@tool_handler("read_document_info", ReadDocumentInfoInput, "Error Reading Document Information",
              "read document information")
async def read_document_info(engine, data: ReadDocumentInfoInput) -> ToolResult:
    fp = data.document_fingerprint
    if fp.layer:
        try:
            layers = await engine.list_layers(fp.document_id)
        except EngineError:
            # Older engines cannot list layers; the info call reports real problems
            layers = None
        if layers is not None and fp.layer not in layers:
            raise ValidationError(
                f"Layer '{fp.layer}' does not exist for document '{fp.document_id}'. "
                f"Available layers: {', '.join(layers) or 'None'}",
                field="layer",
            )

    info = await engine.document_info(fp)

    markdown = "# Document Information\n\n"
    markdown += fingerprint_lines(fp)
    markdown += f"**Pages:** {info.get('pageCount', 0)}  \n"
    markdown += "**Content Type:** application/pdf  \n"

    if data.include_metadata:
        markdown += "\n## Metadata\n"
        metadata = info.get("metadata") or {}
        for key, label in _METADATA_LABELS:
            if metadata.get(key):
                markdown += f"- **{label}:** {metadata[key]}\n"
        if info.get("hasXFA"):
            markdown += "- **Has XFA Forms:** Yes\n"

        permissions = info.get("permissions") or {}
        if permissions:
            markdown += "\n### Permissions\n"
            for key, label in _PERMISSION_LABELS:
                if isinstance(permissions.get(key), bool):
                    markdown += f"- **{label}:** {'Allowed' if permissions[key] else 'Not Allowed'}\n"

        pages = info.get("pages") or []
        if pages:
            markdown += "\n### Pages\n"
            for i, page in enumerate(pages):
                markdown += f"- **Page {i + 1}:** Width: {page.get('width')}, Height: {page.get('height')}\n"

    return ToolResult(success=True, markdown=markdown, details={"document_info": info})

# docplanner/tools/annotations.py
"""
Annotation tools: add, read, delete.
"""
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import Field

from docplanner.core.annotations import AnnotationType, Coordinates, annotation_create_request, build_annotation
from docplanner.core.errors import EngineError
from docplanner.core.instructions import validate_page_indices
from docplanner.core.resolver import EngineOperation, resolve
from docplanner.tools.base import FingerprintInput, ToolResult, fingerprint_lines, tool_handler


def short_type(engine_type: Optional[str]) -> str:
    """`pspdfkit/markup/highlight` -> `highlight`."""
    if not engine_type:
        return "unknown"
    return engine_type.removeprefix("pspdfkit/").removeprefix("markup/")


def format_bbox(bbox: Optional[List[float]]) -> str:
    if not bbox:
        return "Unknown location"
    left, top, width, height = bbox[:4]
    return f"[left: {left:.1f}, top: {top:.1f}, width: {width:.1f}, height: {height:.1f}]"


def _created_id(response: Any) -> str:
    if isinstance(response, list) and response and isinstance(response[0], dict) and response[0].get("id"):
        return response[0]["id"]
    if isinstance(response, dict):
        return response.get("annotation_id") or response.get("id") or "Unknown"
    return "Unknown"


class AddAnnotationInput(FingerprintInput):
    page_number: int = Field(..., ge=0, description="Page number (0-based) where the annotation should be added")
    annotation_type: AnnotationType
    content: str = Field(..., description="Content for the annotation (text, note, URL, etc.)")
    coordinates: Coordinates
    author: Optional[str] = None


@tool_handler("add_annotation", AddAnnotationInput, "Error Adding Annotation", "add the annotation",
              tips=["Verify the page number exists in the document",
                    "Check that the coordinates are within page bounds"])
async def add_annotation(engine, data: AddAnnotationInput) -> ToolResult:
    fp = data.document_fingerprint
    info = await engine.document_info(fp)
    validate_page_indices([data.page_number], int(info.get("pageCount", 0)))

    annotation = build_annotation(data.annotation_type, data.page_number, data.coordinates.bbox(), data.content, data.author)
    payload = annotation.to_payload()
    response = await engine.call(
        resolve(fp, EngineOperation.CREATE_ANNOTATION),
        json=annotation_create_request(annotation, data.author),
    )
    annotation_id = _created_id(response)

    c = data.coordinates
    markdown = "# Annotation Added Successfully\n\n"
    markdown += f"**Annotation ID:** {annotation_id}  \n"
    markdown += f"**Document:** {info.get('title') or 'Untitled Document'}  \n"
    markdown += fingerprint_lines(fp)
    if data.author:
        markdown += f"**Author:** {data.author}  \n"
    markdown += f"**Created:** {datetime.now(timezone.utc).isoformat()}  \n\n---\n\n"
    markdown += "## Annotation Details\n\n"
    markdown += f"- **Type:** {data.annotation_type.value.capitalize()}\n"
    markdown += f"- **Page:** {data.page_number + 1}\n"
    markdown += f'- **Content:** "{data.content}"\n'
    markdown += f"- **Location:** Page {data.page_number + 1}, coordinates ({c.left:.1f}, {c.top:.1f})\n"
    markdown += f"- **Size:** {c.width:.1f} x {c.height:.1f}\n"
    for key, label in (("color", "Color"), ("blendMode", "Blend Mode"), ("fontSize", "Font Size")):
        if payload.get(key):
            markdown += f"- **{label}:** {payload[key]}\n"

    return ToolResult(success=True, markdown=markdown, details={"annotation_id": annotation_id, "content": payload})


class ReadAnnotationsInput(FingerprintInput):
    page_number: Optional[int] = Field(None, ge=0, description="Filter annotations by specific page number (0-based)")
    annotation_type: Optional[AnnotationType] = None
    author: Optional[str] = None


def _matches(record: Dict[str, Any], data: ReadAnnotationsInput) -> bool:
    content = record.get("content") or {}
    if data.page_number is not None and content.get("pageIndex") != data.page_number:
        return False
    if data.annotation_type is not None and short_type(content.get("type")) != data.annotation_type.value:
        return False
    if data.author and record.get("createdBy") != data.author:
        return False
    return True


def _filters_markdown(data: ReadAnnotationsInput) -> str:
    lines = ""
    if data.page_number is not None:
        lines += f"- Page: {data.page_number}\n"
    if data.annotation_type is not None:
        lines += f"- Type: {data.annotation_type.value}\n"
    if data.author:
        lines += f"- Author: {data.author}\n"
    return f"\n**Applied Filters:**\n{lines}" if lines else ""


@tool_handler("read_annotations", ReadAnnotationsInput, "Error Reading Annotations", "read annotations",
              tips=["Verify the document ID is correct and the document exists",
                    "Try removing filters if you're using specific page/type/author filters"])
async def read_annotations(engine, data: ReadAnnotationsInput) -> ToolResult:
    fp = data.document_fingerprint
    response = await engine.call(resolve(fp, EngineOperation.LIST_ANNOTATIONS))
    everything = (response or {}).get("annotations") or []
    records = [r for r in everything if _matches(r, data)]

    markdown = "# Document Annotations\n\n"
    markdown += fingerprint_lines(fp)
    markdown += f"**Total Annotations:** {len(records)}  \n"

    if not records:
        if everything:
            markdown += f"\n**Note:** Document has {len(everything)} total annotations, but none match the specified filters.\n"
            markdown += _filters_markdown(data)
        else:
            markdown += "\nThis document does not contain any annotations.\n"
        return ToolResult(success=True, markdown=markdown, details={"annotations": [], "total": len(everything)})

    by_page: Dict[int, List[Dict[str, Any]]] = {}
    for record in records:
        by_page.setdefault((record.get("content") or {}).get("pageIndex", -1), []).append(record)
    pages = sorted(by_page)
    authors = list(dict.fromkeys(r.get("createdBy") or "Unknown" for r in records))

    markdown += f"**Pages with Annotations:** {len(pages)} (pages {', '.join(str(p) for p in pages)})  \n"
    markdown += f"**Authors:** {len(authors)} ({', '.join(authors)})  \n"
    markdown += _filters_markdown(data)
    markdown += "\n---\n\n"

    for page in pages:
        page_records = by_page[page]
        markdown += f"## Page {page} ({len(page_records)} annotation{'' if len(page_records) == 1 else 's'})\n\n"
        for i, record in enumerate(page_records, 1):
            content = record.get("content") or {}
            kind = short_type(content.get("type"))
            markdown += f"### Annotation {i}: {record.get('id')}\n"
            markdown += f"- **Type:** {kind.capitalize()}\n"
            markdown += f"- **Author:** {record.get('createdBy') or 'Unknown'}\n"
            markdown += f"- **Created:** {content.get('createdAt') or 'Unknown'}\n"
            if kind == "text" and isinstance(content.get("text"), dict):
                markdown += f"- **Content:** \"{content['text'].get('value') or 'No content'}\"\n"
            markdown += f"- **Location:** {format_bbox(content.get('bbox'))}\n\n"

    by_type = Counter(short_type((r.get("content") or {}).get("type")) for r in records)
    by_author = Counter(r.get("createdBy") or "Unknown" for r in records)
    markdown += "---\n\n## Summary by Type\n"
    for kind, count in by_type.items():
        markdown += f"- **{kind.capitalize()}s:** {count} annotation{'' if count == 1 else 's'}\n"
    markdown += "\n## Summary by Author\n"
    for author, count in by_author.items():
        markdown += f"- **{author}:** {count} annotation{'' if count == 1 else 's'}\n"

    return ToolResult(
        success=True,
        markdown=markdown,
        details={
            "annotations": [r.get("id") for r in records],
            "total": len(everything),
            "pages": pages,
        },
    )


class DeleteAnnotationsInput(FingerprintInput):
    annotation_ids: List[str] = Field(..., min_length=1, description="The IDs of the annotations to delete")
    confirm_deletion: Optional[bool] = None


@tool_handler("delete_annotations", DeleteAnnotationsInput, "Error Deleting Annotations", "delete the annotations",
              tips=["Verify the annotations exist by using `read_annotations` first",
                    "Check if the annotations might have already been deleted"])
async def delete_annotations(engine, data: DeleteAnnotationsInput) -> ToolResult:
    fp = data.document_fingerprint
    if data.confirm_deletion is False:
        markdown = "# Annotation Deletion Cancelled\n\n"
        markdown += "**Status:** Deletion cancelled by user request  \n"
        markdown += fingerprint_lines(fp)
        markdown += f"**Annotation IDs:** {', '.join(data.annotation_ids)}  \n\n"
        markdown += "The annotation deletion was cancelled because `confirm_deletion` was set to `false`.\n"
        return ToolResult(success=True, markdown=markdown, details={"deleted": [], "cancelled": True})

    # Every id is checked before the first delete so a typo deletes nothing
    records = []
    for annotation_id in data.annotation_ids:
        selector = resolve(fp, EngineOperation.GET_ANNOTATION, annotation_id=annotation_id)
        try:
            records.append(await engine.call(selector) or {})
        except EngineError as exc:
            raise EngineError(f"Annotation {annotation_id} not found: {exc}", code=exc.code, status=exc.status) from exc

    for annotation_id in data.annotation_ids:
        await engine.call(resolve(fp, EngineOperation.DELETE_ANNOTATION, annotation_id=annotation_id))

    count = len(data.annotation_ids)
    markdown = "# Annotations Deleted Successfully\n\n"
    markdown += f"**Status:** {count} annotation{'s' if count > 1 else ''} removed  \n"
    markdown += fingerprint_lines(fp)
    markdown += f"**Deleted Annotation IDs:** {', '.join(data.annotation_ids)}  \n"
    markdown += f"**Deleted At:** {datetime.now(timezone.utc).isoformat()}  \n\n---\n\n"
    markdown += "## Deleted Annotation Details\n"
    for i, (annotation_id, record) in enumerate(zip(data.annotation_ids, records), 1):
        content = record.get("content") or {}
        markdown += f"### Annotation {i}: {annotation_id}\n"
        markdown += f"- **Type:** {content.get('type') or 'Unknown'}\n"
        markdown += f"- **Author:** {record.get('createdBy') or 'Unknown'}\n"
        markdown += f"- **Page:** {content.get('pageIndex', 'Unknown')}\n"
        markdown += f"- **Location on page:** {format_bbox(content.get('bbox'))}\n\n"

    return ToolResult(success=True, markdown=markdown, details={"deleted": list(data.annotation_ids), "cancelled": False})

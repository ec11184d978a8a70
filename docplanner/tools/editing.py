# docplanner/tools/editing.py
"""
Document editing tools.

Single-call edits (insert, rotate, watermark, duplicate) compile one
instruction and submit it. Split and merge need several dependent engine
calls and run them through a StepPipeline, so a failure part-way reports
which documents already exist.
"""
import os
import time
from enum import Enum
from typing import Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from docplanner.config import settings
from docplanner.core import instructions
from docplanner.core.errors import ValidationError
from docplanner.core.instructions import MergePart, Orientation, PageLayout, PageSize
from docplanner.core.models import DocumentFingerprint
from docplanner.core.pipeline import StepPipeline
from docplanner.tools.base import FingerprintInput, ToolResult, fingerprint_lines, tool_handler


class AddNewPageInput(FingerprintInput):
    position: Optional[int] = Field(None, ge=0, description="Position where to add the new page (0-based index, defaults to end of document)")
    page_size: PageSize = PageSize.A4
    orientation: Orientation = Orientation.PORTRAIT
    count: int = Field(1, ge=1, description="Number of new pages to add")


@tool_handler("add_new_page", AddNewPageInput, "Error Adding New Page", "add new pages",
              tips=["Ensure the position is within the document's page range"])
async def add_new_page(engine, data: AddNewPageInput) -> ToolResult:
    fp = data.document_fingerprint
    page_count = await engine.page_count(fp)
    layout = PageLayout(size=data.page_size, orientation=data.orientation)
    instruction = instructions.insert_pages(page_count, data.position, data.count, layout)
    await engine.apply_instructions(fp, instruction)

    position = page_count if data.position is None else data.position
    markdown = "# New Page Added Successfully\n\n"
    markdown += f"**Status:** {data.count} page{'s' if data.count > 1 else ''} added  \n"
    markdown += fingerprint_lines(fp)
    markdown += f"**Total Pages:** {page_count} -> {page_count + data.count}  \n\n---\n\n"
    markdown += "## New Page Details\n"
    markdown += f"- **Position:** {'end of document' if position == page_count else f'before page {position}'}\n"
    markdown += f"- **Page Size:** {data.page_size.value}\n"
    markdown += f"- **Orientation:** {data.orientation.value}\n"

    return ToolResult(
        success=True,
        markdown=markdown,
        details={"page_count": page_count + data.count, "instruction": instruction},
    )


class RotatePagesInput(FingerprintInput):
    pages: List[int] = Field(..., description="Page indices to rotate (0-based)")
    rotation: int = Field(..., description="Rotation in degrees: 90, 180 or 270")


@tool_handler("rotate_pages", RotatePagesInput, "Error Rotating Pages", "rotate the pages",
              tips=["Rotation must be 90, 180 or 270",
                    "Ensure every page index exists in the document"])
async def rotate_pages(engine, data: RotatePagesInput) -> ToolResult:
    fp = data.document_fingerprint
    page_count = await engine.page_count(fp)
    instruction = instructions.rotate_pages(page_count, data.pages, data.rotation)
    rotated = sorted(set(data.pages))
    if rotated:
        await engine.apply_instructions(fp, instruction)

    markdown = "# Pages Rotated Successfully\n\n"
    markdown += fingerprint_lines(fp)
    markdown += f"**Rotation:** {data.rotation} degrees  \n"
    markdown += f"**Pages Rotated:** {', '.join(str(p) for p in rotated) or 'None'}  \n"
    markdown += f"**Total Pages:** {page_count}  \n"

    return ToolResult(success=True, markdown=markdown, details={"rotated": rotated, "instruction": instruction})


class SplitDocumentInput(FingerprintInput):
    split_points: List[int] = Field(
        ...,
        min_length=1,
        description=(
            "Pages where a new section starts (0-based). [3, 7] on a 10-page "
            "document creates pages 0-2, 3-6 and 7-9."
        ),
    )
    naming_pattern: str = Field(default_factory=lambda: settings.SPLIT_NAMING_PATTERN)


def part_name(pattern: str, index: int) -> str:
    return pattern.replace("{index}", str(index + 1))


@tool_handler("split_document", SplitDocumentInput, "Error Splitting Document", "split the document",
              tips=["Ensure split points are within the document's page range",
                    "Split points must be strictly increasing"])
async def split_document(engine, data: SplitDocumentInput) -> ToolResult:
    fp = data.document_fingerprint
    pipeline = StepPipeline("split_document")

    info = await pipeline.step("document_info", lambda: engine.document_info(fp))
    page_count = int(info.get("pageCount", 0))
    original_title = info.get("title") or f"Document {fp.document_id}"
    plan = instructions.split_at(page_count, data.split_points)

    # Copies are taken before the source is trimmed; section 1 keeps the source
    targets: List[DocumentFingerprint] = [fp]
    for section, _ in plan[1:]:
        copy_id = await pipeline.step(
            f"copy_section_{section.index + 1}",
            lambda: engine.copy_document(fp),
            mutates=True,
            created=lambda doc_id: doc_id,
        )
        targets.append(DocumentFingerprint(document_id=copy_id))

    stem = os.path.splitext(original_title)[0]
    parts = []
    for (section, trim), target in zip(plan, targets):
        if trim is not None:
            await pipeline.step(
                f"trim_section_{section.index + 1}",
                lambda target=target, trim=trim: engine.apply_instructions(target, trim),
                mutates=True,
                metadata={"document_id": target.document_id, "start": section.start, "end": section.end},
            )
        parts.append({
            "document_id": target.document_id,
            "layer": target.layer,
            "title": f"{stem}_{part_name(data.naming_pattern, section.index)}.pdf",
            "start": section.start,
            "end": section.end,
            "page_count": section.page_count,
        })

    markdown = "# Document Split Complete\n\n"
    markdown += f"**Original Document:** {original_title}  \n"
    markdown += f"**Split into:** {len(parts)} parts  \n"
    markdown += f"**Total Pages Processed:** {page_count}  \n\n---\n\n"
    markdown += "## Document Parts Created\n\n"
    for i, part in enumerate(parts, 1):
        markdown += f"### Part {i}: {part['title']}\n"
        markdown += f"- **Document ID:** {part['document_id']}\n"
        if part["layer"]:
            markdown += f"- **Layer:** {part['layer']}\n"
        markdown += f"- **Pages:** {part['start']}-{part['end']} ({part['page_count']} pages)\n\n"
    markdown += "---\n\n## Processing Summary\n"
    markdown += f"- **Split Points Used:** {', '.join(str(p) for p in data.split_points)}\n"
    markdown += f"- **Success:** All {len(parts)} parts created successfully\n\n"
    markdown += "**Tip:** Keep track of the document IDs above for further operations on individual parts."

    return ToolResult(success=True, markdown=markdown, details={"parts": parts, "report": pipeline.report.to_dict()})


class MergeDocumentPagesInput(BaseModel):
    parts: List[MergePart] = Field(..., min_length=1)
    title: Optional[str] = Field(None, description='Title for the merged document (defaults to "Merged Document")')


@tool_handler("merge_document_pages", MergeDocumentPagesInput, "Error Merging Documents", "merge the documents",
              tips=["Verify every document ID exists",
                    "Ensure each page range is within its document"])
async def merge_document_pages(engine, data: MergeDocumentPagesInput) -> ToolResult:
    started = time.monotonic()
    pipeline = StepPipeline("merge_document_pages")

    infos: Dict[DocumentFingerprint, dict] = {}
    for part in data.parts:
        fp = part.document_fingerprint
        if fp not in infos:
            infos[fp] = await pipeline.step(f"document_info:{fp.describe()}", lambda fp=fp: engine.document_info(fp))
    page_counts = {fp: int(info.get("pageCount", 0)) for fp, info in infos.items()}

    instruction, total = instructions.merge_parts(data.parts, page_counts)
    title = data.title or "Merged Document"
    new_id = await pipeline.step(
        "create_document",
        lambda: engine.create_document(instruction, title),
        mutates=True,
        created=lambda doc_id: doc_id,
    )

    markdown = "# Documents Merged Successfully\n\n"
    markdown += "**Status:** Documents merged  \n"
    markdown += f"**New Document ID:** {new_id}  \n"
    markdown += f"**Document Title:** {title}  \n"
    markdown += f"**Total Pages:** {total}  \n\n---\n\n## Document Parts\n"
    for i, part in enumerate(data.parts, 1):
        fp = part.document_fingerprint
        doc_pages = page_counts[fp]
        included = part.page_range.page_count(doc_pages) if part.page_range else doc_pages
        markdown += f"### Part {i}: {infos[fp].get('title') or f'Document {i}'}\n"
        markdown += fingerprint_lines(fp, bullet="- ")
        markdown += f"- **Total Pages:** {doc_pages}\n"
        markdown += f"- **Pages Included:** {part.page_range.describe() if part.page_range else 'all pages'}\n"
        markdown += f"- **Number of Pages Included:** {included}\n\n"
    markdown += "---\n\n## Merge Summary\n"
    markdown += f"- **Documents Merged:** {len(data.parts)}\n"
    markdown += f"- **Total Pages in New Document:** {total}\n"
    markdown += f"- **Processing Time:** {time.monotonic() - started:.1f} seconds\n"

    return ToolResult(
        success=True,
        markdown=markdown,
        details={"document_id": new_id, "page_count": total, "report": pipeline.report.to_dict()},
    )


@tool_handler("duplicate_document", FingerprintInput, "Error Duplicating Document", "duplicate the document",
              tips=["Verify the original document ID is correct and the document exists",
                    "Use `list_documents` to see available documents"])
async def duplicate_document(engine, data: FingerprintInput) -> ToolResult:
    fp = data.document_fingerprint
    info = await engine.document_info(fp)
    new_id = await engine.copy_document(fp)

    markdown = "# Document Duplicated Successfully\n\n"
    markdown += "**Status:** Document copied successfully  \n"
    markdown += f"**Original Document ID:** {fp.document_id}  \n"
    if fp.layer:
        markdown += f"**Original Layer:** {fp.layer}  \n"
    markdown += f"**New Document ID:** {new_id}  \n\n---\n\n"
    markdown += "## What Was Copied\n"
    markdown += f"- **All Pages:** {info.get('pageCount', 0)} pages copied\n"
    markdown += "- **Annotations:** Annotations were copied\n"

    return ToolResult(success=True, markdown=markdown, details={"document_id": new_id})


class WatermarkType(str, Enum):
    TEXT = "text"
    IMAGE = "image"


class AddWatermarkInput(FingerprintInput):
    watermark_type: WatermarkType
    content: str = Field(..., min_length=1, description="Watermark text, or image URL for image watermarks")
    opacity: float = Field(0.7, ge=0, le=1)
    rotation: float = Field(0, description="Rotation of the watermark in counterclockwise degrees")


def _check_url(url: str) -> None:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValidationError("Invalid image URL provided", field="content")


@tool_handler("add_watermark", AddWatermarkInput, "Error Adding Watermark", "add watermark to the document",
              tips=["For image watermarks, ensure the URL is accessible",
                    "Check that opacity is between 0 and 1"])
async def add_watermark(engine, data: AddWatermarkInput) -> ToolResult:
    fp = data.document_fingerprint
    if data.watermark_type is WatermarkType.TEXT:
        action = instructions.text_watermark_action(data.content, data.opacity, data.rotation)
    else:
        _check_url(data.content)
        action = instructions.image_watermark_action(data.content, data.opacity, data.rotation)
    page_count = await engine.page_count(fp)
    await engine.apply_instructions(fp, instructions.watermark_instruction(action))

    markdown = "# Watermark Applied Successfully\n\n"
    markdown += "**Status:** Watermark added to all pages  \n"
    markdown += fingerprint_lines(fp)
    markdown += f"**Pages Watermarked:** {page_count}  \n\n---\n\n"
    markdown += "## Watermark Details\n"
    markdown += f"- **Type:** {'Text watermark' if data.watermark_type is WatermarkType.TEXT else 'Image watermark'}\n"
    shown = f"Image from {data.content}" if data.watermark_type is WatermarkType.IMAGE else f'"{data.content}"'
    markdown += f"- **Content:** {shown}\n"
    markdown += f"- **Rotation:** {data.rotation:g} degrees\n"
    markdown += f"- **Opacity:** {round(data.opacity * 100)}%\n"

    return ToolResult(success=True, markdown=markdown, details={"page_count": page_count, "action": action})

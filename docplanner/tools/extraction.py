# docplanner/tools/extraction.py
"""
Extraction tools: page text, search, page rendering, tables and
key-value pairs.

Multi-page text reads are issued one page at a time; tables and key-value
pairs come from one build call with `json-content` output.
"""
import base64
import json
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from docplanner.core.instructions import content_extraction_instruction, validate_page_indices
from docplanner.core.models import PageRange
from docplanner.core.resolver import EngineOperation, resolve
from docplanner.tools.base import FingerprintInput, ToolResult, fingerprint_lines, tool_handler

DEFAULT_RENDER_WIDTH = 800


def _word_count(text: str) -> int:
    return len(text.split())


class ExtractTextInput(FingerprintInput):
    page_range: Optional[PageRange] = Field(None, description="Range of pages to include with start and end indices (0-based)")
    include_coordinates: bool = False
    ocr_enabled: bool = False


@tool_handler("extract_text", ExtractTextInput, "Error Extracting Text", "extract text")
async def extract_text(engine, data: ExtractTextInput) -> ToolResult:
    fp = data.document_fingerprint
    page_count = await engine.page_count(fp)
    start, end = (data.page_range or PageRange()).resolve(page_count)

    pages: List[Dict[str, Any]] = []
    for page_index in range(start, end + 1):
        selector = resolve(fp, EngineOperation.PAGE_TEXT, page_index=page_index)
        response = await engine.call(selector, params={"ocr": True} if data.ocr_enabled else None)
        lines = (response or {}).get("textLines") or []
        pages.append({"page_index": page_index, "lines": lines})

    total_words = sum(_word_count(line.get("contents", "")) for p in pages for line in p["lines"])

    markdown = "# Text Extraction\n\n"
    markdown += fingerprint_lines(fp)
    markdown += f"**Total Pages:** {page_count}  \n"
    markdown += f"**Total Words:** {total_words:,}  \n"
    markdown += f"**OCR Applied:** {'Yes' if data.ocr_enabled else 'No'}  \n"
    markdown += f"**Pages Processed:** {data.page_range.describe() if data.page_range else 'all pages'}  \n"
    markdown += "\n---\n\n"

    for page in pages:
        lines = page["lines"]
        words = sum(_word_count(line.get("contents", "")) for line in lines)
        number = page["page_index"] + 1
        markdown += f"## Page {number} ({words} words)\n"
        if data.include_coordinates or data.ocr_enabled:
            boxes = [
                {
                    "contents": line.get("contents", ""),
                    "boundingBox": [line.get(k) or 0 for k in ("left", "top", "width", "height")],
                }
                for line in lines
            ]
            markdown += f"### Coordinates for Page {number}\n```json\n{json.dumps(boxes, indent=2)}\n```\n\n"
        else:
            markdown += " ".join(line.get("contents", "") for line in lines) + "\n\n"

    markdown += "---\n\n"
    markdown += "**Tip:** Use `extract_form_data` if this document contains fillable forms.\n"

    return ToolResult(
        success=True,
        markdown=markdown,
        details={
            "page_count": page_count,
            "pages": [p["page_index"] for p in pages],
            "total_words": total_words,
        },
    )


class SearchType(str, Enum):
    TEXT = "text"
    REGEX = "regex"
    PRESET = "preset"


class SearchInput(FingerprintInput):
    query: str = Field(..., min_length=1, description="The search query: text, regex pattern, or preset name")
    search_type: SearchType = SearchType.TEXT
    start_page: int = Field(0, ge=0)
    end_page: Optional[int] = Field(None, ge=0)
    include_annotations: bool = False
    case_sensitive: Optional[bool] = None


@tool_handler("search", SearchInput, "Error Searching Document", "search the document")
async def search(engine, data: SearchInput) -> ToolResult:
    fp = data.document_fingerprint
    selector = resolve(fp, EngineOperation.SEARCH)
    # The search index only covers base content, so page bounds come from base too
    info = await engine.call(resolve(fp.model_copy(update={"layer": None}), EngineOperation.DOCUMENT_INFO))
    page_count = int((info or {}).get("pageCount", 0))
    title = (info or {}).get("title") or "Untitled Document"
    end_page = min(data.end_page, page_count - 1) if data.end_page is not None else page_count - 1
    PageRange(start=data.start_page, end=end_page).resolve(page_count)

    params: Dict[str, Any] = {
        "q": data.query,
        "type": data.search_type.value,
        "start": data.start_page,
        "limit": end_page + 1,
        "include_annotations": data.include_annotations,
    }
    if data.case_sensitive is not None:
        params["case_sensitive"] = data.case_sensitive
    results = await engine.call(selector, params=params) or []

    case_sensitive = data.case_sensitive if data.case_sensitive is not None else data.search_type is not SearchType.TEXT
    markdown = "# Search Results\n\n"
    markdown += f"**Document:** {title}  \n"
    markdown += fingerprint_lines(fp)
    if selector.forced_base:
        markdown += "**Searched Content:** base document (search does not support layers)  \n"
    markdown += f'**Query:** "{data.query}"  \n'
    markdown += f"**Search Type:** {data.search_type.value}  \n"
    markdown += f"**Results Found:** {len(results)}  \n"
    markdown += f"**Pages Searched:** {data.start_page} to {end_page} (of {page_count} total)  \n"
    markdown += f"**Case Sensitive:** {'Yes' if case_sensitive else 'No'}  \n"
    markdown += f"**Include Annotations:** {'Yes' if data.include_annotations else 'No'}  \n\n"

    by_page: Dict[int, List[Dict[str, Any]]] = {}
    for result in results:
        by_page.setdefault(int(result.get("pageIndex", 0)), []).append(result)

    if not results:
        markdown += "## No Results Found\n\n"
        markdown += f'No matches were found for "{data.query}" in the specified page range.\n\n'
    else:
        markdown += "---\n\n## Results\n\n"
        for page_index in sorted(by_page):
            page_results = by_page[page_index]
            markdown += f"### Page {page_index + 1} ({len(page_results)} {'match' if len(page_results) == 1 else 'matches'})\n\n"
            for i, result in enumerate(page_results, 1):
                preview = result.get("previewText") or "No preview available"
                span = result.get("rangeInPreview")
                if result.get("previewText") and span:
                    first, length = span
                    preview = f"{preview[:first]}**{preview[first:first + length]}**{preview[first + length:]}"
                markdown += f'**Match {i}:**\n\n"{preview}"\n\n'
            markdown += "---\n\n"

    markdown += "**Tips:**\n\n"
    markdown += "- Use `extract_text` to view the full text content of specific pages\n"
    markdown += "- Use `add_annotation` to highlight or mark important search results\n"

    return ToolResult(
        success=True,
        markdown=markdown,
        details={
            "results": len(results),
            "matches_per_page": {p: len(r) for p, r in sorted(by_page.items())},
            "requested_layer": selector.requested_layer,
            "forced_base": selector.forced_base,
        },
    )


class RenderDocumentPageInput(FingerprintInput):
    pages: List[int] = Field(..., min_length=1, description="Array of page indices to render (0-based)")
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)


@tool_handler("render_document_page", RenderDocumentPageInput, "Error Rendering Pages", "render the pages")
async def render_document_page(engine, data: RenderDocumentPageInput) -> ToolResult:
    fp = data.document_fingerprint
    info = await engine.document_info(fp)
    page_count = int(info.get("pageCount", 0))
    validate_page_indices(data.pages, page_count)

    # Width wins when both are given
    if data.width is not None:
        params, dimensions = {"width": data.width}, f"Width: {data.width}px"
    elif data.height is not None:
        params, dimensions = {"height": data.height}, f"Height: {data.height}px"
    else:
        params, dimensions = {"width": DEFAULT_RENDER_WIDTH}, f"Width: {DEFAULT_RENDER_WIDTH}px (default)"

    page_sizes = info.get("pages") or []
    images = []
    markdown = "# Document Page Render\n\n"
    markdown += fingerprint_lines(fp)
    markdown += f"**Total Pages Rendered:** {len(data.pages)} of {page_count} total pages\n"
    markdown += "**Image Format:** image/png\n"
    markdown += f"**Dimensions:** {dimensions}\n\n## Page Details\n\n"

    for page_index in data.pages:
        selector = resolve(fp, EngineOperation.RENDER_PAGE, page_index=page_index)
        content = await engine.call(selector, params=params, expect="bytes")
        images.append({
            "page_index": page_index,
            "mime_type": "image/png",
            "base64": base64.b64encode(content or b"").decode("ascii"),
        })
        size = page_sizes[page_index] if page_index < len(page_sizes) else {}
        original = (
            f"{size['width']} x {size['height']} points"
            if size.get("width") and size.get("height") else "Unknown"
        )
        markdown += f"### Page {page_index + 1} of {page_count}\n**Original Page Size:** {original}\n\n"

    return ToolResult(success=True, markdown=markdown, details={"images": images})


class ExtractTablesInput(FingerprintInput):
    page_range: Optional[PageRange] = Field(None, description="Range of pages to include with start and end indices (0-based)")


class ExtractKeyValuePairsInput(FingerprintInput):
    page_range: Optional[PageRange] = Field(None, description="Range of pages to include with start and end indices (0-based)")


async def _read_content(engine, fp, page_range: Optional[PageRange], **output) -> Tuple[Dict[str, Any], List[Tuple[int, Dict[str, Any]]]]:
    """Document info plus `(page_index, page)` for every page of json-content output."""
    info = await engine.document_info(fp)
    page_count = int(info.get("pageCount", 0))
    instruction = content_extraction_instruction(fp, page_count, page_range, **output)
    response = await engine.build_document(instruction)
    first = page_range.resolve(page_count)[0] if page_range else 0
    pages = []
    for position, page in enumerate(response.get("pages") or []):
        if isinstance(page, dict):
            pages.append((int(page.get("pageIndex", first + position)), page))
    return info, pages


def _content_header(title: str, info: Dict[str, Any], fp, page_range: Optional[PageRange]) -> str:
    markdown = f"# {title}\n\n"
    markdown += f"**Document:** {info.get('title') or 'Untitled Document'}  \n"
    markdown += fingerprint_lines(fp)
    markdown += f"**Total Pages:** {info.get('pageCount', 0)}  \n"
    markdown += f"**Pages Processed:** {page_range.describe() if page_range else 'all pages'}  \n"
    return markdown


def _md_cell(value: Any) -> str:
    return str(value or "").replace("|", "\\|").replace("\n", " ")


def table_rows(cells: List[Dict[str, Any]]) -> List[List[str]]:
    """Cells `{rowIndex, columnIndex, text}` as a dense grid; gaps are empty strings."""
    if not cells:
        return []
    width = max(int(c.get("columnIndex", 0)) for c in cells) + 1
    grid: Dict[int, List[str]] = {}
    for cell in cells:
        row = grid.setdefault(int(cell.get("rowIndex", 0)), [""] * width)
        row[int(cell.get("columnIndex", 0))] = cell.get("text") or ""
    return [grid[i] for i in sorted(grid)]


@tool_handler("extract_tables", ExtractTablesInput, "Error Extracting Tables", "extract tables",
              tips=["Tables stored as images are not detected; run `extract_text` with OCR instead"])
async def extract_tables(engine, data: ExtractTablesInput) -> ToolResult:
    fp = data.document_fingerprint
    info, pages = await _read_content(engine, fp, data.page_range, tables=True)
    tables = [
        {"page_index": page_index, "rows": table_rows(table.get("cells") or [])}
        for page_index, page in pages
        for table in page.get("tables") or []
        if isinstance(table, dict)
    ]

    markdown = _content_header("Table Extraction", info, fp, data.page_range)
    markdown += f"**Tables Found:** {len(tables)}  \n\n---\n\n"

    if not tables:
        markdown += "## No Tables Found\n\n"
        markdown += "No tables were detected in the selected pages. The document may have no tables, "
        markdown += "or its tables may be images rather than structured content.\n"
    else:
        markdown += "## Extracted Tables\n\n"
        for i, table in enumerate(tables, 1):
            markdown += f"### Table {i} (Page {table['page_index'] + 1})\n\n"
            rows = table["rows"]
            if not rows:
                markdown += "*Table structure detected but no cells were found*\n\n"
                continue
            width = len(rows[0])
            markdown += "| " + " | ".join(f"Column {c + 1}" for c in range(width)) + " |\n"
            markdown += "| " + " | ".join("---" for _ in range(width)) + " |\n"
            for row in rows:
                markdown += "| " + " | ".join(_md_cell(v) for v in row) + " |\n"
            markdown += "\n"

    return ToolResult(success=True, markdown=markdown, details={"tables": tables, "table_count": len(tables)})


@tool_handler("extract_key_value_pairs", ExtractKeyValuePairsInput, "Error Extracting Key-Value Pairs",
              "extract key-value pairs")
async def extract_key_value_pairs(engine, data: ExtractKeyValuePairsInput) -> ToolResult:
    fp = data.document_fingerprint
    info, pages = await _read_content(engine, fp, data.page_range, key_value_pairs=True)
    pairs = []
    for page_index, page in pages:
        for pair in page.get("keyValuePairs") or []:
            if not isinstance(pair, dict):
                continue
            pairs.append({
                "key": (pair.get("key") or {}).get("content") or "",
                "value": (pair.get("value") or {}).get("content") or "",
                "page_index": page_index,
            })

    markdown = _content_header("Key-Value Pair Extraction", info, fp, data.page_range)
    markdown += f"**Key-Value Pairs Extracted:** {len(pairs)}  \n\n---\n\n"
    markdown += "## Extracted Key-Value Pairs\n\n"
    if not pairs:
        markdown += "No key-value pairs were extracted. The selected pages may hold no structured "
        markdown += "key-value data, or they may be blank.\n"
    else:
        markdown += "| Key | Value | Page |\n| --- | ----- | ---- |\n"
        for pair in pairs:
            markdown += f"| {_md_cell(pair['key'])} | {_md_cell(pair['value'])} | {pair['page_index'] + 1} |\n"

    return ToolResult(success=True, markdown=markdown, details={"pairs": pairs, "pair_count": len(pairs)})

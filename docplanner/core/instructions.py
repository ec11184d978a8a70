# docplanner/core/instructions.py
"""
Page-range instruction compiler.

Turns declarative page parameters (insert position, rotation selection,
split points, merge parts) into the ordered `parts` list expected by the
engine's page-composition calls. Every function here is pure: it validates
against a known page count and returns a plain dict, so nothing reaches the
engine when a parameter is out of bounds.

Example:
    insert_pages(5, position=0, count=2, layout=PageLayout())
    -> {"parts": [{"page": "new", "pageCount": 2, "layout": {...}},
                  {"document": {"id": "#self"}, "pages": {"start": 0, "end": 4}}]}
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import structlog
from pydantic import BaseModel, Field

from docplanner.core.errors import ValidationError
from docplanner.core.models import SELF_DOCUMENT, DocumentFingerprint, PageRange

logger = structlog.get_logger()

ALLOWED_ROTATIONS = (90, 180, 270)


class PageSize(str, Enum):
    A0 = "A0"
    A1 = "A1"
    A2 = "A2"
    A3 = "A3"
    A4 = "A4"
    A5 = "A5"
    A6 = "A6"
    A7 = "A7"
    A8 = "A8"
    LETTER = "Letter"
    LEGAL = "Legal"


class Orientation(str, Enum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


class PageLayout(BaseModel):
    size: PageSize = PageSize.A4
    orientation: Orientation = Orientation.PORTRAIT

    def to_payload(self) -> Dict[str, str]:
        return {"size": self.size.value, "orientation": self.orientation.value}


class MergePart(BaseModel):
    """One caller-specified source of a merge."""
    document_fingerprint: DocumentFingerprint
    page_range: Optional[PageRange] = Field(None, description="Range of pages to include (0-based); all pages when omitted")


@dataclass(frozen=True)
class SplitSection:
    """One output section of a split, zero-based inclusive."""
    index: int
    start: int
    end: int

    @property
    def page_count(self) -> int:
        return self.end - self.start + 1


# ---------------------------------------------------------------------------
# Part builders
# ---------------------------------------------------------------------------

def self_part(start: Optional[int] = None, end: Optional[int] = None, actions: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    part: Dict[str, Any] = {"document": {"id": SELF_DOCUMENT}}
    pages = {}
    if start is not None:
        pages["start"] = start
    if end is not None:
        pages["end"] = end
    if pages:
        part["pages"] = pages
    if actions:
        part["actions"] = list(actions)
    return part


def new_pages_part(count: int, layout: PageLayout) -> Dict[str, Any]:
    return {"page": "new", "pageCount": count, "layout": layout.to_payload()}


def rotate_action(degrees: int) -> Dict[str, Any]:
    return {"type": "rotate", "rotateBy": degrees}


def _check_page_count(page_count: int) -> None:
    if page_count < 0:
        raise ValidationError(f"Invalid page count: {page_count}", field="page_count")


def _runs(indices: Sequence[int]) -> List[Tuple[int, int]]:
    """Group ascending unique indices into maximal (start, end) runs."""
    runs: List[Tuple[int, int]] = []
    for idx in indices:
        if runs and idx == runs[-1][1] + 1:
            runs[-1] = (runs[-1][0], idx)
        else:
            runs.append((idx, idx))
    return runs


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def insert_pages(page_count: int, position: Optional[int], count: int, layout: PageLayout) -> Dict[str, Any]:
    """
    Instruction inserting `count` blank pages before `position`.

    Args:
        page_count: Current page count of the target document
        position: 0-based insertion index; None or page_count appends
        count: Number of new pages (>= 1)
        layout: Page size and orientation of the new pages

    Raises:
        ValidationError: If position is outside [0, page_count] or count < 1
    """
    _check_page_count(page_count)
    if count < 1:
        raise ValidationError(f"Page count to insert must be at least 1 (got {count})", field="count")
    if position is None:
        position = page_count
    if position < 0 or position > page_count:
        raise ValidationError(
            f"Position {position} is out of bounds (document has {page_count} pages)",
            field="position",
        )

    parts: List[Dict[str, Any]] = []
    if position > 0:
        parts.append(self_part(0, position - 1))
    parts.append(new_pages_part(count, layout))
    if position < page_count:
        parts.append(self_part(position, page_count - 1))

    logger.debug("instruction_compiled", kind="insert_pages", parts=len(parts), position=position, count=count)
    return {"parts": parts}


def validate_page_indices(page_indices: Iterable[int], page_count: int) -> List[int]:
    """Return the sorted unique indices, rejecting any outside [0, page_count-1]."""
    unique = sorted(set(page_indices))
    for idx in unique:
        if idx < 0 or idx >= page_count:
            raise ValidationError(
                f"Page index {idx} is out of bounds (document has {page_count} pages, valid indices are 0-{page_count - 1})",
                field="pages",
            )
    return unique


def rotate_pages(page_count: int, page_indices: Iterable[int], degrees: int) -> Dict[str, Any]:
    """
    Instruction rotating the selected pages by `degrees`, keeping page order.

    Contiguous selected pages share one rotated part; untouched runs are
    emitted as passthrough parts between them. An empty selection yields a
    single passthrough part.
    """
    _check_page_count(page_count)
    if degrees not in ALLOWED_ROTATIONS:
        raise ValidationError(f"Rotation must be one of {ALLOWED_ROTATIONS} (got {degrees})", field="rotation")
    selected = set(validate_page_indices(page_indices, page_count))

    parts: List[Dict[str, Any]] = []
    run_start = 0
    for idx in range(1, page_count + 1):
        # Close the run at the end of the document or when selection flips
        if idx == page_count or ((idx in selected) != (run_start in selected)):
            actions = [rotate_action(degrees)] if run_start in selected else None
            parts.append(self_part(run_start, idx - 1, actions))
            run_start = idx

    logger.debug("instruction_compiled", kind="rotate_pages", parts=len(parts), rotated=len(selected))
    return {"parts": parts}


def rotation_coverage(instruction: Dict[str, Any], page_count: int) -> List[int]:
    """Rotation applied to each page index by a `#self` instruction (0 when untouched)."""
    coverage: List[int] = []
    for part in instruction["parts"]:
        pages = part.get("pages", {})
        start = pages.get("start", 0)
        end = pages.get("end", page_count - 1)
        degrees = sum(a.get("rotateBy", 0) for a in part.get("actions", []) if a.get("type") == "rotate")
        coverage.extend([degrees] * (end - start + 1))
    return coverage


def split_sections(page_count: int, split_points: Sequence[int]) -> List[SplitSection]:
    """
    Sections produced by cutting the document at `split_points`.

    Each point is the number of pages before the cut, so [3, 7] on a
    10-page document yields 0-2, 3-6 and 7-9. Points must be strictly
    increasing and within [1, page_count - 1].
    """
    _check_page_count(page_count)
    if not split_points:
        raise ValidationError("At least one split point is required", field="split_points")
    previous = 0
    for point in split_points:
        if point < 1 or point > page_count - 1:
            raise ValidationError(
                f"Split point {point} is out of bounds (document has {page_count} pages, valid points are 1-{page_count - 1})",
                field="split_points",
            )
        if point <= previous:
            raise ValidationError(
                f"Split points must be strictly increasing (got {list(split_points)})",
                field="split_points",
            )
        previous = point

    bounds = [0, *split_points, page_count]
    return [
        SplitSection(index=i, start=bounds[i], end=bounds[i + 1] - 1)
        for i in range(len(bounds) - 1)
    ]


def keep_pages_instruction(page_count: int, keep: Iterable[int]) -> Optional[Dict[str, Any]]:
    """
    Page-removal instruction keeping only the `keep` indices.

    Returns None when every page is kept (nothing to remove).
    """
    kept = validate_page_indices(keep, page_count)
    if not kept:
        raise ValidationError("Cannot remove every page of a document", field="pages")
    if len(kept) == page_count:
        return None
    parts = [self_part(start, end) for start, end in _runs(kept)]
    return {"parts": parts}


def remove_pages(page_count: int, remove: Iterable[int]) -> Optional[Dict[str, Any]]:
    """Page-removal instruction dropping the `remove` indices."""
    dropped = set(validate_page_indices(remove, page_count))
    return keep_pages_instruction(page_count, (i for i in range(page_count) if i not in dropped))


def split_at(page_count: int, split_points: Sequence[int]) -> List[Tuple[SplitSection, Optional[Dict[str, Any]]]]:
    """Sections of a split, each paired with the trimming instruction for its copy."""
    sections = split_sections(page_count, split_points)
    plan = [
        (section, keep_pages_instruction(page_count, range(section.start, section.end + 1)))
        for section in sections
    ]
    logger.debug("instruction_compiled", kind="split", sections=len(sections))
    return plan


def merge_parts(parts: Sequence[MergePart], page_counts: Dict[DocumentFingerprint, int]) -> Tuple[Dict[str, Any], int]:
    """
    Create-document instruction concatenating `parts` in the order given.

    Args:
        parts: Caller parts, each a document (+ layer) and optional range
        page_counts: Live page count per fingerprint appearing in `parts`

    Returns:
        (instruction, total page count of the resulting document)
    """
    if not parts:
        raise ValidationError("At least one document part is required", field="parts")
    built: List[Dict[str, Any]] = []
    total = 0
    for i, part in enumerate(parts):
        fp = part.document_fingerprint
        if fp not in page_counts:
            raise ValidationError(f"No page count known for part {i + 1} ({fp.describe()})", field="parts")
        doc_pages = page_counts[fp]
        entry: Dict[str, Any] = {"document": fp.document_ref()}
        if part.page_range is None:
            total += doc_pages
        else:
            try:
                total += part.page_range.page_count(doc_pages)
            except ValidationError as exc:
                raise ValidationError(f"Part {i + 1}: {exc}", field="parts") from exc
            pages = part.page_range.to_payload()
            if pages:
                entry["pages"] = pages
        built.append(entry)

    logger.debug("instruction_compiled", kind="merge", parts=len(built), total_pages=total)
    return {"parts": built}, total


def watermark_instruction(action: Dict[str, Any]) -> Dict[str, Any]:
    """Whole-document instruction applying one document-wide watermark action."""
    return {"parts": [self_part()], "actions": [action]}


def text_watermark_action(text: str, opacity: float, rotation: float = 0) -> Dict[str, Any]:
    if not 0 <= opacity <= 1:
        raise ValidationError(f"Opacity must be between 0 and 1 (got {opacity})", field="opacity")
    return {
        "type": "watermark",
        "text": text,
        "width": "100%",
        "height": "100%",
        "opacity": opacity,
        "rotation": rotation,
    }


def image_watermark_action(image_url: str, opacity: float, rotation: float = 0) -> Dict[str, Any]:
    if not 0 <= opacity <= 1:
        raise ValidationError(f"Opacity must be between 0 and 1 (got {opacity})", field="opacity")
    return {
        "type": "watermark",
        "image": {"url": image_url},
        "width": "25%",
        "height": "15%",
        "opacity": opacity,
        "rotation": rotation,
    }


def content_extraction_instruction(
    fingerprint: DocumentFingerprint,
    page_count: int,
    page_range: Optional[PageRange] = None,
    tables: bool = False,
    key_value_pairs: bool = False,
) -> Dict[str, Any]:
    """
    Build instruction reading structured content (`json-content` output).

    The page range is checked against `page_count` and never clamped.
    """
    if not tables and not key_value_pairs:
        raise ValidationError("Nothing to extract: enable tables or key-value pairs", field="output")
    part: Dict[str, Any] = {"document": fingerprint.document_ref()}
    if page_range is not None:
        page_range.resolve(page_count)
        pages = page_range.to_payload()
        if pages:
            part["pages"] = pages
    return {
        "parts": [part],
        "output": {
            "type": "json-content",
            "plainText": False,
            "structuredText": False,
            "keyValuePairs": key_value_pairs,
            "tables": tables,
        },
    }

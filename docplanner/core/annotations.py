# docplanner/core/annotations.py
"""
Annotation variant builder.

A generic annotation request (type tag, page, box, free-form content)
becomes one of nine annotation payloads. Each payload is its own frozen
dataclass; `ANNOTATION_BUILDERS` maps every AnnotationType to exactly one
constructor and is checked at import time, so a new type cannot be added to
the enum without a builder.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from docplanner.core.errors import ValidationError

ANNOTATION_FORMAT_VERSION = 2


class AnnotationType(str, Enum):
    NOTE = "note"
    HIGHLIGHT = "highlight"
    STRIKEOUT = "strikeout"
    UNDERLINE = "underline"
    INK = "ink"
    TEXT = "text"
    STAMP = "stamp"
    IMAGE = "image"
    LINK = "link"


class Coordinates(BaseModel):
    """Position and size of an annotation on its page."""
    model_config = ConfigDict(extra="forbid")

    left: float
    top: float
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)

    def bbox(self) -> "BBox":
        return (self.left, self.top, self.width, self.height)


BBox = Tuple[float, float, float, float]  # left, top, width, height
Rect = Tuple[float, float, float, float]  # left, top, right, bottom


def bbox_to_rect(bbox: BBox) -> Rect:
    left, top, width, height = bbox
    return (left, top, left + width, top + height)


@dataclass(frozen=True, kw_only=True)
class AnnotationVariant:
    TYPE: ClassVar[str] = ""

    page_index: int
    bbox: BBox
    opacity: float = 1.0
    creator_name: Optional[str] = None

    def _fields(self) -> Dict[str, Any]:
        return {}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "v": ANNOTATION_FORMAT_VERSION,
            "type": self.TYPE,
            "pageIndex": self.page_index,
            "bbox": list(self.bbox),
            "opacity": self.opacity,
        }
        payload.update(self._fields())
        if self.creator_name:
            payload["creatorName"] = self.creator_name
        return payload


@dataclass(frozen=True, kw_only=True)
class NoteAnnotation(AnnotationVariant):
    TYPE: ClassVar[str] = "pspdfkit/note"
    text: str
    icon: str = "comment"
    color: str = "#FFD83F"

    def _fields(self) -> Dict[str, Any]:
        return {"text": {"format": "plain", "value": self.text}, "icon": self.icon, "color": self.color}


@dataclass(frozen=True, kw_only=True)
class MarkupAnnotation(AnnotationVariant):
    """Shared shape of highlight/strikeout/underline: a note plus rects."""
    rects: List[Rect]
    note: str
    color: str

    def _fields(self) -> Dict[str, Any]:
        return {"rects": [list(r) for r in self.rects], "color": self.color, "note": self.note}


@dataclass(frozen=True, kw_only=True)
class HighlightAnnotation(MarkupAnnotation):
    TYPE: ClassVar[str] = "pspdfkit/markup/highlight"
    color: str = "#FFFF00"
    blend_mode: str = "multiply"

    def _fields(self) -> Dict[str, Any]:
        return {**super()._fields(), "blendMode": self.blend_mode}


@dataclass(frozen=True, kw_only=True)
class StrikeoutAnnotation(MarkupAnnotation):
    TYPE: ClassVar[str] = "pspdfkit/markup/strikeout"
    color: str = "#FF0000"


@dataclass(frozen=True, kw_only=True)
class UnderlineAnnotation(MarkupAnnotation):
    TYPE: ClassVar[str] = "pspdfkit/markup/underline"
    color: str = "#0000FF"


@dataclass(frozen=True, kw_only=True)
class InkAnnotation(AnnotationVariant):
    TYPE: ClassVar[str] = "pspdfkit/ink"
    lines: List[List[Tuple[float, float]]]
    line_width: int = 2
    color: str = "#000000"

    def _fields(self) -> Dict[str, Any]:
        return {
            "lines": {"points": [[list(p) for p in stroke] for stroke in self.lines]},
            "lineWidth": self.line_width,
            "color": self.color,
        }


@dataclass(frozen=True, kw_only=True)
class TextAnnotation(AnnotationVariant):
    TYPE: ClassVar[str] = "pspdfkit/text"
    text: str
    font_size: int = 12
    font_color: str = "#000000"
    horizontal_align: str = "left"
    vertical_align: str = "top"

    def _fields(self) -> Dict[str, Any]:
        return {
            "text": {"format": "plain", "value": self.text},
            "fontSize": self.font_size,
            "fontColor": self.font_color,
            "horizontalAlign": self.horizontal_align,
            "verticalAlign": self.vertical_align,
        }


@dataclass(frozen=True, kw_only=True)
class StampAnnotation(AnnotationVariant):
    TYPE: ClassVar[str] = "pspdfkit/stamp"
    title: str
    stamp_type: str = "Custom"

    def _fields(self) -> Dict[str, Any]:
        return {"title": self.title, "stampType": self.stamp_type}


@dataclass(frozen=True, kw_only=True)
class ImageAnnotation(AnnotationVariant):
    TYPE: ClassVar[str] = "pspdfkit/image"
    file_name: str

    def _fields(self) -> Dict[str, Any]:
        return {"fileName": self.file_name}


@dataclass(frozen=True, kw_only=True)
class LinkAnnotation(AnnotationVariant):
    TYPE: ClassVar[str] = "pspdfkit/link"
    uri: str

    def _fields(self) -> Dict[str, Any]:
        return {"action": {"type": "uri", "uri": self.uri}}


AnnotationContent = Union[
    NoteAnnotation,
    HighlightAnnotation,
    StrikeoutAnnotation,
    UnderlineAnnotation,
    InkAnnotation,
    TextAnnotation,
    StampAnnotation,
    ImageAnnotation,
    LinkAnnotation,
]


def _diagonal_stroke(bbox: BBox) -> List[List[Tuple[float, float]]]:
    # No freehand points are collected, so ink gets one line corner to corner.
    left, top, right, bottom = bbox_to_rect(bbox)
    return [[(left, top), (right, bottom)]]


ANNOTATION_BUILDERS: Dict[AnnotationType, Callable[..., AnnotationVariant]] = {
    AnnotationType.NOTE: lambda content, **common: NoteAnnotation(text=content, **common),
    AnnotationType.HIGHLIGHT: lambda content, **common: HighlightAnnotation(
        rects=[bbox_to_rect(common["bbox"])], note=content, **common),
    AnnotationType.STRIKEOUT: lambda content, **common: StrikeoutAnnotation(
        rects=[bbox_to_rect(common["bbox"])], note=content, **common),
    AnnotationType.UNDERLINE: lambda content, **common: UnderlineAnnotation(
        rects=[bbox_to_rect(common["bbox"])], note=content, **common),
    AnnotationType.INK: lambda content, **common: InkAnnotation(lines=_diagonal_stroke(common["bbox"]), **common),
    AnnotationType.TEXT: lambda content, **common: TextAnnotation(text=content, **common),
    AnnotationType.STAMP: lambda content, **common: StampAnnotation(title=content, **common),
    AnnotationType.IMAGE: lambda content, **common: ImageAnnotation(file_name=content, **common),
    AnnotationType.LINK: lambda content, **common: LinkAnnotation(uri=content, **common),
}

_missing = set(AnnotationType) - set(ANNOTATION_BUILDERS)
if _missing:
    raise RuntimeError(f"No annotation builder for: {sorted(t.value for t in _missing)}")


def build_annotation(
    annotation_type: Union[AnnotationType, str],
    page_index: int,
    bbox: BBox,
    content: str,
    author: Optional[str] = None,
) -> AnnotationVariant:
    """
    Build the typed annotation payload for one request.

    Args:
        annotation_type: One of the nine AnnotationType tags
        page_index: 0-based page the annotation belongs to
        bbox: (left, top, width, height)
        content: Text, note, stamp title, image file name or link URI
        author: Optional creator name

    Raises:
        ValidationError: If the type is unknown or the page index negative
    """
    try:
        kind = AnnotationType(annotation_type)
    except ValueError:
        raise ValidationError(f"Unsupported annotation type: {annotation_type}", field="annotation_type")
    if page_index < 0:
        raise ValidationError(f"Page index {page_index} must not be negative", field="page_number")

    common = {"page_index": page_index, "bbox": tuple(bbox), "creator_name": author or None}
    return ANNOTATION_BUILDERS[kind](content, **common)


def annotation_create_request(annotation: AnnotationVariant, author: Optional[str] = None) -> Dict[str, Any]:
    """Request body for the create-annotation call."""
    body: Dict[str, Any] = {"content": annotation.to_payload()}
    if author:
        body["user_id"] = author
    return body

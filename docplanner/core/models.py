# docplanner/core/models.py
"""
Value objects shared across the planner: which document (and layer) an
operation targets, and which pages of it.
"""
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from docplanner.core.errors import ValidationError

SELF_DOCUMENT = "#self"


class DocumentFingerprint(BaseModel):
    """Document identifier with optional layer.

    When `layer` is set every engine call of the operation goes to the
    layer-scoped endpoint family; otherwise the base document is used.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(..., min_length=1, description="The ID on the Document Engine to identify the document")
    layer: Optional[str] = Field(None, description="Optional layer name. If not specified, operations use the base document")

    @field_validator("layer")
    @classmethod
    def _blank_layer_is_base(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    def document_ref(self) -> Dict[str, str]:
        """Reference used inside instruction parts to point at this document."""
        ref = {"id": self.document_id}
        if self.layer:
            ref["layer"] = self.layer
        return ref

    def describe(self) -> str:
        if self.layer:
            return f"{self.document_id} (layer {self.layer})"
        return self.document_id


class PageRange(BaseModel):
    """Zero-based, inclusive page range.

    Omitted `start` means from the first page, omitted `end` through the
    last page. Bounds are only checked against a live page count in
    `resolve`, and violations are never clamped.
    """

    model_config = ConfigDict(frozen=True)

    start: Optional[int] = Field(None, ge=0)
    end: Optional[int] = Field(None, ge=0)

    def resolve(self, page_count: int) -> Tuple[int, int]:
        last = page_count - 1
        if self.start is not None and not 0 <= self.start <= last:
            raise ValidationError(
                f"Page range start {self.start} is out of bounds (document has {page_count} pages, valid indices are 0-{last})",
                field="start",
            )
        if self.end is not None and not 0 <= self.end <= last:
            raise ValidationError(
                f"Page range end {self.end} is out of bounds (document has {page_count} pages, valid indices are 0-{last})",
                field="end",
            )
        start = self.start if self.start is not None else 0
        end = self.end if self.end is not None else last
        if start > end:
            raise ValidationError(
                f"Invalid page range: start ({start}) must be less than or equal to end ({end})",
                field="start",
            )
        return start, end

    def page_count(self, document_page_count: int) -> int:
        start, end = self.resolve(document_page_count)
        return end - start + 1

    def to_payload(self) -> Dict[str, Any]:
        payload = {}
        if self.start is not None:
            payload["start"] = self.start
        if self.end is not None:
            payload["end"] = self.end
        return payload

    def describe(self) -> str:
        if self.start is not None and self.end is not None:
            return f"pages {self.start} to {self.end}"
        if self.start is not None:
            return f"pages {self.start} to end"
        if self.end is not None:
            return f"pages 0 to {self.end}"
        return "all pages"

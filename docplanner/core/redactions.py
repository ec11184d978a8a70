# docplanner/core/redactions.py
"""
Two-phase redaction.

Phase one (`create_redaction`) asks the engine to mark matches as pending
redaction annotations and returns a preview; content stays intact. Phase two
(`apply_redactions`) commits pending redactions and is irreversible. The
commit endpoint is only ever reached from `apply_redactions`.
"""
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

import structlog
from pydantic import BaseModel, Field

from docplanner.core.errors import EngineError, ValidationError
from docplanner.core.models import DocumentFingerprint
from docplanner.core.resolver import EngineOperation, resolve

logger = structlog.get_logger()

REDACTION_ANNOTATION_TYPE = "pspdfkit/markup/redaction"
APPLY_ALL = "all"


class RedactionType(str, Enum):
    TEXT = "text"
    REGEX = "regex"
    PRESET = "preset"


class RedactionPreset(str, Enum):
    SOCIAL_SECURITY_NUMBER = "social-security-number"
    CREDIT_CARD_NUMBER = "credit-card-number"
    EMAIL_ADDRESS = "email-address"
    INTERNATIONAL_PHONE_NUMBER = "international-phone-number"
    NORTH_AMERICAN_PHONE_NUMBER = "north-american-phone-number"
    DATE = "date"
    TIME = "time"
    URL = "url"
    US_ZIP_CODE = "us-zip-code"
    IPV4 = "ipv4"
    IPV6 = "ipv6"
    MAC_ADDRESS = "mac-address"
    VIN = "vin"


PRESET_LABELS: Dict[RedactionPreset, str] = {
    RedactionPreset.SOCIAL_SECURITY_NUMBER: "Social Security Number",
    RedactionPreset.CREDIT_CARD_NUMBER: "Credit Card Number",
    RedactionPreset.EMAIL_ADDRESS: "Email Address",
    RedactionPreset.INTERNATIONAL_PHONE_NUMBER: "International Phone Number",
    RedactionPreset.NORTH_AMERICAN_PHONE_NUMBER: "North American Phone Number",
    RedactionPreset.DATE: "Date",
    RedactionPreset.TIME: "Time",
    RedactionPreset.URL: "URL",
    RedactionPreset.US_ZIP_CODE: "US ZIP Code",
    RedactionPreset.IPV4: "IPv4 Address",
    RedactionPreset.IPV6: "IPv6 Address",
    RedactionPreset.MAC_ADDRESS: "MAC Address",
    RedactionPreset.VIN: "Vehicle Identification Number",
}


class RedactionRequest(BaseModel):
    redaction_type: RedactionType
    text: Optional[str] = Field(None, description='Text to redact. Required for redaction type "text"')
    pattern: Optional[str] = Field(None, description='Regex pattern to redact. Required for redaction type "regex"')
    preset: Optional[RedactionPreset] = Field(None, description='Preset pattern to redact. Required for redaction type "preset"')

    def describe(self) -> str:
        if self.redaction_type is RedactionType.REGEX:
            return f"Custom Pattern: {self.pattern}"
        if self.redaction_type is RedactionType.PRESET and self.preset is not None:
            return f"Preset: {PRESET_LABELS[self.preset]}"
        return f"Text: {self.text}"


# redaction type -> (request field, strategyOptions key)
_STRATEGY_FIELDS = {
    RedactionType.TEXT: ("text", "text"),
    RedactionType.REGEX: ("pattern", "regex"),
    RedactionType.PRESET: ("preset", "preset"),
}


def build_strategy(request: RedactionRequest) -> Dict[str, Any]:
    """
    Engine strategy object for a redaction request.

    The declared type must come with exactly its own payload field: a missing
    field, or a field belonging to another type, is rejected.
    """
    own_field, option_key = _STRATEGY_FIELDS[request.redaction_type]
    value = getattr(request, own_field)
    if value is None or value == "":
        raise ValidationError(
            f'Invalid redaction configuration: "{own_field}" is required for redaction type "{request.redaction_type.value}"',
            field=own_field,
        )
    foreign = [
        name for kind, (name, _) in _STRATEGY_FIELDS.items()
        if kind is not request.redaction_type and getattr(request, name) not in (None, "")
    ]
    if foreign:
        raise ValidationError(
            f'Invalid redaction configuration: {", ".join(foreign)} not allowed for redaction type "{request.redaction_type.value}"',
            field=foreign[0],
        )
    if isinstance(value, Enum):
        value = value.value
    return {"strategy": request.redaction_type.value, "strategyOptions": {option_key: value}}


@dataclass(frozen=True)
class RedactionMatch:
    id: str
    page_index: int
    bbox: Optional[List[float]] = None


@dataclass
class RedactionPreview:
    """Pending redactions created by phase one."""

    matches: List[RedactionMatch] = field(default_factory=list)

    @property
    def ids(self) -> List[str]:
        return [m.id for m in self.matches]

    @property
    def pages(self) -> List[int]:
        return sorted({m.page_index for m in self.matches})

    @property
    def matches_per_page(self) -> Dict[int, int]:
        counts = Counter(m.page_index for m in self.matches)
        return {page: counts[page] for page in self.pages}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ids": self.ids,
            "match_count": len(self.matches),
            "pages": self.pages,
            "matches_per_page": self.matches_per_page,
        }


def _match_from_annotation(annotation: Dict[str, Any]) -> RedactionMatch:
    content = annotation.get("content") if isinstance(annotation.get("content"), dict) else annotation
    page_index = content.get("pageIndex", annotation.get("pageIndex"))
    if annotation.get("id") is None or page_index is None:
        raise EngineError("Invalid response from Document Engine API: redaction annotation without id or pageIndex")
    return RedactionMatch(id=str(annotation["id"]), page_index=int(page_index), bbox=content.get("bbox"))


async def create_redaction(engine, fingerprint: DocumentFingerprint, request: RedactionRequest) -> RedactionPreview:
    """Phase one: mark matches as pending redactions and return the preview."""
    strategy = build_strategy(request)
    data = await engine.call(resolve(fingerprint, EngineOperation.CREATE_REDACTIONS), json=strategy)
    if not isinstance(data, dict):
        raise EngineError("Invalid response from Document Engine API")
    preview = RedactionPreview(matches=[_match_from_annotation(a) for a in data.get("annotations") or []])
    logger.info(
        "redactions_created",
        document_id=fingerprint.document_id,
        layer=fingerprint.layer,
        strategy=strategy["strategy"],
        matches=len(preview.matches),
    )
    return preview


async def verify_redaction(engine, fingerprint: DocumentFingerprint, redaction_id: str) -> Dict[str, Any]:
    """Confirm `redaction_id` exists on the engine and is a redaction annotation."""
    try:
        annotation = await engine.call(
            resolve(fingerprint, EngineOperation.GET_ANNOTATION, annotation_id=redaction_id)
        )
    except EngineError as exc:
        raise EngineError(
            f"Redaction {redaction_id} could not be verified: {exc}",
            code=exc.code, status=exc.status, details=exc.details,
        ) from exc
    content = annotation.get("content", annotation) if isinstance(annotation, dict) else {}
    kind = content.get("type") if isinstance(content, dict) else None
    if kind is not None and kind != REDACTION_ANNOTATION_TYPE:
        raise ValidationError(f"Annotation {redaction_id} is not a redaction (type {kind})", field="redaction_ids")
    return annotation


async def pending_redaction_ids(engine, fingerprint: DocumentFingerprint) -> List[str]:
    """Ids of every redaction annotation still pending on the document."""
    response = await engine.call(resolve(fingerprint, EngineOperation.LIST_ANNOTATIONS))
    if isinstance(response, dict):
        records = response.get("annotations") or []
    else:
        records = response or []
    pending = []
    for record in records:
        if not isinstance(record, dict):
            continue
        content = record.get("content") or {}
        if content.get("type") == REDACTION_ANNOTATION_TYPE and record.get("id"):
            pending.append(record["id"])
    return pending


async def apply_redactions(
    engine,
    fingerprint: DocumentFingerprint,
    redaction_ids: Union[Sequence[str], Literal["all"]],
) -> Union[List[str], str]:
    """
    Phase two: commit pending redactions. Irreversible.

    Args:
        redaction_ids: Ids returned by `create_redaction`, or "all"

    Returns:
        The verified ids, or "all"

    Raises:
        ValidationError: On an empty id list, a non-redaction id, or when
            other redactions are pending that the commit would also apply
        EngineError: If an id is unknown to the engine; nothing is committed
    """
    if redaction_ids == APPLY_ALL:
        verified: Union[List[str], str] = APPLY_ALL
    else:
        ids = list(redaction_ids)
        if not ids:
            raise ValidationError("At least one redaction ID is required", field="redaction_ids")
        if any(not i for i in ids):
            raise ValidationError("Redaction ID cannot be empty", field="redaction_ids")
        for redaction_id in ids:
            await verify_redaction(engine, fingerprint, redaction_id)
        # The commit endpoint applies every pending redaction of the document
        others = [i for i in await pending_redaction_ids(engine, fingerprint) if i not in ids]
        if others:
            raise ValidationError(
                f"Document has {len(others)} other pending redaction(s) ({', '.join(others)}) that would also be "
                "committed. Add them to redaction_ids, delete them first, or pass all=true to apply every pending redaction",
                field="redaction_ids",
            )
        verified = ids

    await engine.call(resolve(fingerprint, EngineOperation.APPLY_REDACTIONS))
    logger.info(
        "redactions_applied",
        document_id=fingerprint.document_id,
        layer=fingerprint.layer,
        redactions=verified if verified == APPLY_ALL else len(verified),
    )
    return verified

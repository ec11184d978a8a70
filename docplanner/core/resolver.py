# docplanner/core/resolver.py
"""
Fingerprint resolver.

Every engine operation that can target either a document's base content or
one of its layers is declared once in OPERATION_TABLE. `resolve` is the only
place that branches on `fingerprint.layer`; callers receive an
EndpointSelector and hand it to the engine transport unchanged.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional
from urllib.parse import quote

import structlog

from docplanner.config import settings
from docplanner.core.errors import ValidationError
from docplanner.core.models import DocumentFingerprint

logger = structlog.get_logger()

LAYER_PREFIX = "/api/documents/{document_id}/layers/{layer}"
BASE_PREFIX = "/api/documents/{document_id}"


class EngineOperation(str, Enum):
    DOCUMENT_INFO = "document_info"
    PAGE_TEXT = "page_text"
    RENDER_PAGE = "render_page"
    LIST_ANNOTATIONS = "list_annotations"
    GET_ANNOTATION = "get_annotation"
    CREATE_ANNOTATION = "create_annotation"
    DELETE_ANNOTATION = "delete_annotation"
    FORM_FIELDS = "form_fields"
    FORM_FIELD_VALUES = "form_field_values"
    UPDATE_FORM_FIELD_VALUES = "update_form_field_values"
    APPLY_INSTRUCTIONS = "apply_instructions"
    CREATE_REDACTIONS = "create_redactions"
    APPLY_REDACTIONS = "apply_redactions"
    COPY_DOCUMENT = "copy_document"
    SEARCH = "search"


class EndpointFamily(str, Enum):
    BASE = "base"
    LAYER = "layer"


@dataclass(frozen=True)
class OperationSpec:
    """Endpoint templates of one operation; `layer_path` is None when the
    engine has no layer-scoped counterpart."""
    method: str
    base_path: str
    layer_path: Optional[str]


def _scoped(method: str, suffix: str, layered: bool = True) -> OperationSpec:
    return OperationSpec(
        method=method,
        base_path=BASE_PREFIX + suffix,
        layer_path=LAYER_PREFIX + suffix if layered else None,
    )


OPERATION_TABLE: Dict[EngineOperation, OperationSpec] = {
    EngineOperation.DOCUMENT_INFO: _scoped("GET", "/document_info"),
    EngineOperation.PAGE_TEXT: _scoped("GET", "/pages/{page_index}/text"),
    EngineOperation.RENDER_PAGE: _scoped("GET", "/pages/{page_index}/image"),
    EngineOperation.LIST_ANNOTATIONS: _scoped("GET", "/annotations"),
    EngineOperation.GET_ANNOTATION: _scoped("GET", "/annotations/{annotation_id}"),
    EngineOperation.CREATE_ANNOTATION: _scoped("POST", "/annotations"),
    EngineOperation.DELETE_ANNOTATION: _scoped("DELETE", "/annotations/{annotation_id}"),
    EngineOperation.FORM_FIELDS: _scoped("GET", "/form-fields"),
    EngineOperation.FORM_FIELD_VALUES: _scoped("GET", "/form-field-values"),
    EngineOperation.UPDATE_FORM_FIELD_VALUES: _scoped("POST", "/form-field-values"),
    EngineOperation.APPLY_INSTRUCTIONS: _scoped("POST", "/apply_instructions"),
    EngineOperation.CREATE_REDACTIONS: _scoped("POST", "/redactions"),
    EngineOperation.APPLY_REDACTIONS: _scoped("POST", "/redact"),
    # Base copies go through a top-level endpoint taking the id in the body;
    # layered sources are duplicated together with their layer state.
    EngineOperation.COPY_DOCUMENT: OperationSpec(
        method="POST",
        base_path="/api/copy_document",
        layer_path=LAYER_PREFIX + "/copy_with_instant_json",
    ),
    # The search index only covers base content.
    EngineOperation.SEARCH: _scoped("GET", "/search", layered=False),
}


@dataclass(frozen=True)
class EndpointSelector:
    """Concrete endpoint chosen for one engine call."""
    operation: EngineOperation
    family: EndpointFamily
    method: str
    path: str
    path_params: Dict[str, Any] = field(default_factory=dict)
    # Layer the caller asked for, kept even when dispatch was forced to base
    requested_layer: Optional[str] = None

    @property
    def forced_base(self) -> bool:
        return self.requested_layer is not None and self.family is EndpointFamily.BASE


def supports_layers(operation: EngineOperation, base_only: Optional[Iterable[str]] = None) -> bool:
    """Whether `operation` has a layer-scoped counterpart on the target engine."""
    if OPERATION_TABLE[operation].layer_path is None:
        return False
    if base_only is None:
        base_only = settings.ENGINE_BASE_ONLY_OPERATIONS
    return operation.value not in set(base_only)


def resolve(
    fingerprint: DocumentFingerprint,
    operation: EngineOperation,
    base_only: Optional[Iterable[str]] = None,
    **path_params: Any,
) -> EndpointSelector:
    """Pick the endpoint family for `operation` on `fingerprint`.

    Args:
        fingerprint: Target document and optional layer
        operation: Engine operation to dispatch
        base_only: Override of settings.ENGINE_BASE_ONLY_OPERATIONS
        **path_params: Extra path parameters (page_index, annotation_id)

    Returns:
        EndpointSelector with the formatted path

    Raises:
        ValidationError: If the operation is unknown or a path parameter is missing
    """
    try:
        spec = OPERATION_TABLE[EngineOperation(operation)]
    except (KeyError, ValueError):
        raise ValidationError(f"Unknown engine operation: {operation}", field="operation")
    operation = EngineOperation(operation)

    params: Dict[str, Any] = {"document_id": fingerprint.document_id, **path_params}
    if fingerprint.layer and supports_layers(operation, base_only):
        family = EndpointFamily.LAYER
        template = spec.layer_path
        params["layer"] = fingerprint.layer
    else:
        family = EndpointFamily.BASE
        template = spec.base_path
        if fingerprint.layer:
            logger.info(
                "layer_dispatch_forced_to_base",
                operation=operation.value,
                document_id=fingerprint.document_id,
                layer=fingerprint.layer,
            )

    try:
        path = template.format(**{k: quote(str(v), safe="") for k, v in params.items()})
    except KeyError as exc:
        raise ValidationError(f"Missing path parameter {exc} for operation {operation.value}", field=str(exc).strip("'"))

    return EndpointSelector(
        operation=operation,
        family=family,
        method=spec.method,
        path=path,
        path_params=params,
        requested_layer=fingerprint.layer,
    )

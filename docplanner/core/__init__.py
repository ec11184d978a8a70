"""
Document Operation Planner core.

Pure planning logic (fingerprint resolution, instruction compilation,
annotation payloads, redaction strategies) plus the step pipeline used by
multi-step engine operations. Nothing here holds state across calls.
"""

from docplanner.core.errors import (
    PlannerError,
    ValidationError,
    EngineError,
    PartialCompletionError,
)
from docplanner.core.models import DocumentFingerprint, PageRange
from docplanner.core.resolver import EngineOperation, EndpointSelector, resolve

__all__ = [
    "PlannerError",
    "ValidationError",
    "EngineError",
    "PartialCompletionError",
    "DocumentFingerprint",
    "PageRange",
    "EngineOperation",
    "EndpointSelector",
    "resolve",
]

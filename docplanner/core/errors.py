# docplanner/core/errors.py
"""
Error taxonomy shared by the planner core and the tool handlers.

- ValidationError: input rejected before any engine call.
- EngineError: the engine rejected or failed a call; the engine's own
  message is kept verbatim.
- PartialCompletionError: a multi-step operation stopped part-way; carries
  the step report so callers can inspect or clean up created artifacts.
"""
from typing import Any, Optional


class PlannerError(Exception):
    """Base class for every error the planner surfaces to tool handlers."""

    kind = "error"

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": str(self)}


class ValidationError(PlannerError):
    kind = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


# HTTP status -> error code reported by the engine transport
STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "AUTHENTICATION_FAILED",
    403: "ACCESS_FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    413: "FILE_TOO_LARGE",
    429: "RATE_LIMIT_EXCEEDED",
    500: "SERVER_ERROR",
    502: "SERVER_ERROR",
    503: "SERVER_ERROR",
    504: "SERVER_ERROR",
}


class EngineError(PlannerError):
    kind = "engine_error"

    def __init__(self, message: str, code: str = "API_ERROR", status: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.code = code
        self.status = status
        self.details = details

    @classmethod
    def from_status(cls, status: int, message: str, details: Any = None) -> "EngineError":
        return cls(message, code=STATUS_CODES.get(status, "API_ERROR"), status=status, details=details)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["code"] = self.code
        data["status"] = self.status
        return data


class PartialCompletionError(PlannerError):
    kind = "partial_completion"

    def __init__(self, message: str, report: Any):
        super().__init__(message)
        self.report = report

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["report"] = self.report.to_dict()
        return data

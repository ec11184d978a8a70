# docplanner/core/pipeline.py
"""
Step pipeline for multi-step engine operations.

Split and merge need several dependent engine calls (copy, then trim each
copy; look up page counts, then create). Steps run strictly one after the
other and each outcome is recorded. When a step fails after an earlier step
already changed engine state, the failure is raised as a
PartialCompletionError carrying the full report: nothing is rolled back,
but the caller can see which documents exist and where it stopped.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from docplanner.core.errors import PartialCompletionError

logger = structlog.get_logger()


class StepStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class StepRecord:
    """Outcome of one engine step."""

    name: str
    status: StepStatus
    mutates: bool = False
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    error: str | None = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "mutates": self.mutates,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "metadata": self.metadata,
        }


@dataclass
class PipelineReport:
    """Every step of one operation, plus the engine artifacts it created."""

    operation: str
    steps: List[StepRecord] = field(default_factory=list)
    created: List[str] = field(default_factory=list)

    @property
    def failed_step(self) -> Optional[StepRecord]:
        for step in self.steps:
            if step.status is StepStatus.FAILED:
                return step
        return None

    @property
    def completed(self) -> bool:
        return self.failed_step is None

    @property
    def partial(self) -> bool:
        """True when a step failed after engine state was already changed."""
        return not self.completed and any(
            s.mutates and s.status is StepStatus.COMPLETED for s in self.steps
        )

    @property
    def completed_steps(self) -> List[StepRecord]:
        return [s for s in self.steps if s.status is StepStatus.COMPLETED]

    def to_dict(self) -> Dict[str, Any]:
        failed = self.failed_step
        return {
            "operation": self.operation,
            "completed": self.completed,
            "partial": self.partial,
            "failed_step": failed.name if failed else None,
            "created": list(self.created),
            "steps": [s.to_dict() for s in self.steps],
        }


class StepPipeline:
    """
    Runs engine steps sequentially and records their outcome.

    Usage::

        pipeline = StepPipeline("split_document")
        copy_id = await pipeline.step("copy_1", lambda: engine.copy(fp), mutates=True,
                                      created=lambda doc_id: doc_id)
        ...
        report = pipeline.report
    """

    def __init__(self, operation: str):
        self.report = PipelineReport(operation=operation)
        self.log = logger.bind(operation=operation)

    async def step(
        self,
        name: str,
        action: Callable[[], Awaitable[Any]],
        mutates: bool = False,
        created: Optional[Callable[[Any], Optional[str]]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Execute one step.

        Args:
            name: Step label shown in reports
            action: Zero-argument coroutine factory performing the engine call
            mutates: Whether a successful run changes engine state
            created: Extracts the id of a created artifact from the result
            metadata: Extra details stored on the step record

        Raises:
            PartialCompletionError: If the step fails after a mutating step succeeded
            Exception: The step's own error when nothing was changed yet
        """
        started_at = datetime.now(timezone.utc)
        record = StepRecord(name=name, status=StepStatus.COMPLETED, mutates=mutates,
                            started_at=started_at, metadata=dict(metadata or {}))
        try:
            result = await action()
        except Exception as exc:
            record.status = StepStatus.FAILED
            record.error = str(exc)
            self._finish(record)
            self.log.warning("pipeline_step_failed", step=name, error=str(exc))
            if self.report.partial:
                raise PartialCompletionError(
                    f"{self.report.operation} stopped at step '{name}' after "
                    f"{len(self.report.completed_steps)} completed step(s): {exc}",
                    self.report,
                ) from exc
            raise

        if created is not None:
            artifact = created(result)
            if artifact:
                self.report.created.append(artifact)
                record.metadata["created"] = artifact
        self._finish(record)
        self.log.debug("pipeline_step_completed", step=name, duration_ms=record.duration_ms)
        return result

    def _finish(self, record: StepRecord) -> None:
        record.completed_at = datetime.now(timezone.utc)
        record.duration_ms = int((record.completed_at - record.started_at).total_seconds() * 1000)
        self.report.steps.append(record)

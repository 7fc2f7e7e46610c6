from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

KNOWN_STATUSES = ("succeeded", "failed", "inprogress")


@dataclass(frozen=True)
class StageStatus:
    """One action of a pipeline, flattened out of its stage.

    latest_status is lower-cased; values outside KNOWN_STATUSES are passed
    through unchanged ("" when the source had no execution at all).
    """

    name: str
    revision_id: Optional[str] = None
    latest_status: str = ""
    last_status_change: Optional[int] = None  # epoch millis
    external_execution_url: Optional[str] = None
    error_details: Optional[str] = None

    @property
    def is_known_status(self) -> bool:
        return self.latest_status in KNOWN_STATUSES

    @property
    def short_revision(self) -> str:
        return (self.revision_id or "")[:7]


@dataclass(frozen=True)
class PipelineSummary:
    name: str
    commit_message: str = ""
    stages: Tuple[StageStatus, ...] = ()
    status: str = "ok"  # ok/error
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def failed(cls, name: str, exc: BaseException) -> "PipelineSummary":
        return cls(
            name=name,
            status="error",
            error_type=type(exc).__name__,
            error_message=str(exc),
        )

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def recency(self) -> Optional[int]:
        """Most recent status change across all stages (epoch millis)."""
        changes = [s.last_status_change for s in self.stages if s.last_status_change is not None]
        return max(changes) if changes else None

    @property
    def started_at(self) -> Optional[int]:
        changes = [s.last_status_change for s in self.stages if s.last_status_change is not None]
        return min(changes) if changes else None

    @property
    def duration_ms(self) -> Optional[int]:
        if self.recency is None or self.started_at is None:
            return None
        return self.recency - self.started_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "commitMessage": self.commit_message,
            "status": self.status,
            "errorType": self.error_type,
            "errorMessage": self.error_message,
            "lastStatusChange": self.recency,
            "stages": [
                {
                    "name": s.name,
                    "revisionId": s.revision_id,
                    "latestStatus": s.latest_status,
                    "lastStatusChange": s.last_status_change,
                    "externalExecutionUrl": s.external_execution_url,
                    "errorDetails": s.error_details,
                }
                for s in self.stages
            ],
        }


@dataclass(frozen=True)
class EngineState:
    """Snapshot observed by the rendering layer. Replaced, never mutated."""

    pipelines: Tuple[PipelineSummary, ...] = ()
    loading: bool = False
    detail: Optional[PipelineSummary] = None
    refreshed_at: Optional[datetime] = None

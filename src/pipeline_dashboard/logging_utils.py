from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from pipeline_dashboard.models import PipelineSummary


@dataclass(frozen=True)
class RunContext:
    run_id: str
    started_at_utc: datetime


def new_run_context() -> RunContext:
    return RunContext(run_id=str(uuid.uuid4()), started_at_utc=datetime.now(timezone.utc))


def default_log_path(logs_dir: Path, now_utc: Optional[datetime] = None) -> Path:
    ts = now_utc or datetime.now(timezone.utc)
    return logs_dir / f"dashboard-{ts.strftime('%Y%m%d')}.jsonl"


class JsonlLogger:
    """Append-only event log, one JSON object per line.

    Each write opens and closes the file so concurrent commands on the same
    day can share one log.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: Dict[str, Any]) -> None:
        line = json.dumps(event, ensure_ascii=False, sort_keys=True, default=str)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")


def engine_event(event: str, *, at: datetime, run_id: Optional[str] = None, **fields: Any) -> Dict[str, Any]:
    """One scheduler event line: name, timestamp, run id (when known), then the event's own fields."""

    record: Dict[str, Any] = {"event": event, "at": at.isoformat()}
    if run_id is not None:
        record["run_id"] = run_id
    record.update(fields)
    return record


def failure_fields(exc: BaseException) -> Dict[str, str]:
    return {"error_type": type(exc).__name__, "error_message": str(exc)}


def publish_fields(pipelines: Iterable[PipelineSummary]) -> Dict[str, int]:
    counts = status_counts(pipelines)
    return {"pipelines": sum(counts.values()), "failed": counts["error"]}


def status_counts(pipelines: Iterable[PipelineSummary]) -> Dict[str, int]:
    counts = {"ok": 0, "error": 0}
    for p in pipelines:
        counts[p.status] = counts.get(p.status, 0) + 1
    return counts


def run_summary_event(*, ctx: RunContext, status_counts: Dict[str, int]) -> Dict[str, Any]:
    ended_at_utc = datetime.now(timezone.utc)
    duration_s = (ended_at_utc - ctx.started_at_utc).total_seconds()

    return {
        "event": "run_summary",
        "run_id": ctx.run_id,
        "started_at": ctx.started_at_utc.isoformat(),
        "ended_at": ended_at_utc.isoformat(),
        "duration_s": duration_s,
        "status_counts": status_counts,
    }

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote

from pipeline_dashboard.errors import DataFetchError, DecodeError, StaleResultDiscarded
from pipeline_dashboard.models import PipelineSummary, StageStatus
from pipeline_dashboard.sequencer import RequestSequencer

logger = logging.getLogger(__name__)

PIPELINES_ENDPOINT = "/pipelines"


def pipeline_endpoint(name: str) -> str:
    return f"/pipeline/{quote(name, safe='')}"


class PipelineDataSource:
    """Typed reads against the pipeline API, routed through the sequencer.

    Endpoints:
      - GET /pipelines         -> [{"name": ...}, ...]
      - GET /pipeline/{name}   -> {"commitMessage": ..., "stageStates": [...]}

    Transport and decoding failures surface as DataFetchError subclasses;
    StaleResultDiscarded passes through untouched. There is no retry.
    """

    def __init__(self, sequencer: RequestSequencer) -> None:
        self.sequencer = sequencer

    async def list_names(self) -> List[str]:
        payload = await self._get(PIPELINES_ENDPOINT)
        return parse_pipeline_names(payload)

    async def get_details(self, name: str) -> PipelineSummary:
        endpoint = pipeline_endpoint(name)
        payload = await self._get(endpoint)
        try:
            return parse_pipeline_details(name, payload)
        except DecodeError:
            raise
        except (TypeError, ValueError, AttributeError, OverflowError) as exc:
            raise DecodeError(endpoint, exc) from exc

    async def _get(self, endpoint: str) -> Any:
        try:
            return await self.sequencer.get_json(endpoint)
        except (StaleResultDiscarded, DataFetchError):
            raise
        except Exception as exc:
            # Injected transports may raise anything; normalize at this boundary.
            raise DataFetchError(endpoint, exc) from exc


def parse_pipeline_names(payload: Any) -> List[str]:
    if not isinstance(payload, list):
        raise DecodeError(PIPELINES_ENDPOINT, message=f"expected a list, got {type(payload).__name__}")

    names: List[str] = []
    for entry in payload:
        name = entry.get("name") if isinstance(entry, dict) else None
        if not isinstance(name, str) or not name:
            logger.warning("Skipping pipeline list entry without a name: %r", entry)
            continue
        names.append(name)
    return names


def parse_pipeline_details(name: str, payload: Any) -> PipelineSummary:
    """Flatten stageStates[*].actionStates[*] into one ordered stage list.

    Stage grouping boundaries are dropped on purpose. Missing optional
    sub-objects become empty records instead of errors.
    """

    endpoint = pipeline_endpoint(name)
    if not isinstance(payload, dict):
        raise DecodeError(endpoint, message=f"expected an object, got {type(payload).__name__}")

    stages: List[StageStatus] = []
    for stage_state in _as_list(payload.get("stageStates"), endpoint, "stageStates"):
        if not isinstance(stage_state, dict):
            continue
        for action_state in _as_list(stage_state.get("actionStates"), endpoint, "actionStates"):
            if not isinstance(action_state, dict):
                continue
            stages.append(parse_action_state(action_state))

    commit_message = payload.get("commitMessage")
    return PipelineSummary(
        name=name,
        commit_message=commit_message if isinstance(commit_message, str) else "",
        stages=tuple(stages),
    )


def parse_action_state(action_state: Mapping[str, Any]) -> StageStatus:
    current_revision = _as_dict(action_state.get("currentRevision"))
    latest_execution = _as_dict(action_state.get("latestExecution"))
    error_details = _as_dict(latest_execution.get("errorDetails"))

    status = latest_execution.get("status") or ""

    return StageStatus(
        name=str(action_state.get("actionName") or ""),
        revision_id=_opt_str(current_revision.get("revisionId")),
        latest_status=str(status).lower(),
        last_status_change=_opt_millis(latest_execution.get("lastStatusChange")),
        external_execution_url=_opt_str(latest_execution.get("externalExecutionUrl")),
        error_details=_opt_str(error_details.get("message")),
    )


def _as_list(value: Any, endpoint: str, field: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(endpoint, message=f"{field} is not a list")
    return value


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _opt_millis(value: Any) -> Optional[int]:
    # bool is an int subclass but never a timestamp
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)

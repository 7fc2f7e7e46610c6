from __future__ import annotations

from typing import Iterable, List, Tuple

from pipeline_dashboard.models import PipelineSummary


def recency_key(pipeline: PipelineSummary) -> Tuple[bool, int]:
    """Sort key for "most recently changed first".

    Uses the newest last_status_change across the pipeline's stages.
    Pipelines without any timestamp (including failed fetches) sort last.
    """

    recency = pipeline.recency
    return (recency is not None, recency if recency is not None else 0)


def sort_by_recency(pipelines: Iterable[PipelineSummary]) -> List[PipelineSummary]:
    # sorted() stays stable with reverse=True: ties keep their name-list order.
    return sorted(pipelines, key=recency_key, reverse=True)

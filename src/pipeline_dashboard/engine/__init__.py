"""Synchronization engine (fetch -> aggregate -> sort -> publish)."""

from pipeline_dashboard.engine.recency import recency_key, sort_by_recency
from pipeline_dashboard.engine.scheduler import AggregationScheduler
from pipeline_dashboard.engine.state import PublishedState

__all__ = ["AggregationScheduler", "PublishedState", "recency_key", "sort_by_recency"]

"""Pipeline API adapters."""

from pipeline_dashboard.sources.pipelines import (
    PIPELINES_ENDPOINT,
    PipelineDataSource,
    parse_action_state,
    parse_pipeline_details,
    parse_pipeline_names,
    pipeline_endpoint,
)

__all__ = [
    "PIPELINES_ENDPOINT",
    "PipelineDataSource",
    "parse_action_state",
    "parse_pipeline_details",
    "parse_pipeline_names",
    "pipeline_endpoint",
]

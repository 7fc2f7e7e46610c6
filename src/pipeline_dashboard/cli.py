from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

import typer

from pipeline_dashboard.config import Settings, load_settings
from pipeline_dashboard.engine import AggregationScheduler
from pipeline_dashboard.logging_utils import (
    JsonlLogger,
    RunContext,
    default_log_path,
    new_run_context,
    run_summary_event,
    status_counts,
)
from pipeline_dashboard.models import EngineState, PipelineSummary
from pipeline_dashboard.refresh import RefreshConfig
from pipeline_dashboard.sequencer import RequestSequencer
from pipeline_dashboard.sources import PipelineDataSource
from pipeline_dashboard.transport import RequestsTransport

app = typer.Typer(add_completion=False, help="pipeline_dashboard CLI (text stand-in for the dashboard view)")


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        exists=True,
        dir_okay=False,
        file_okay=True,
        readable=True,
        help="Path to YAML config (optional)",
    ),
) -> None:
    """Load settings and store them in Typer context."""

    settings = load_settings(config)
    settings.paths.logs_dir.mkdir(parents=True, exist_ok=True)
    ctx.obj = {"settings": settings}


def _start_command(settings: Settings, command: str, **extra) -> Tuple[RunContext, JsonlLogger]:
    run_ctx = new_run_context()
    logger = JsonlLogger(default_log_path(settings.paths.logs_dir, now_utc=run_ctx.started_at_utc))
    logger.log(
        {
            "event": "command_start",
            "command": command,
            "run_id": run_ctx.run_id,
            "api_base_url": settings.api_base_url,
            **extra,
        }
    )
    return run_ctx, logger


def _build_scheduler(
    settings: Settings,
    refresh: RefreshConfig,
    *,
    logger: JsonlLogger,
    run_id: str,
) -> Tuple[RequestsTransport, AggregationScheduler]:
    transport = RequestsTransport(settings.api_base_url, timeout_s=settings.request_timeout_s)
    source = PipelineDataSource(RequestSequencer(transport))
    scheduler = AggregationScheduler(source, refresh, event_log=logger, run_id=run_id)
    return transport, scheduler


def format_pipeline_line(pipeline: PipelineSummary, now_ms: Optional[int] = None) -> str:
    """One text row per pipeline: name, overall state, per-stage statuses."""

    if not pipeline.ok:
        return f"{pipeline.name:<32} ERROR  {pipeline.error_type}: {pipeline.error_message}"

    stages = " ".join(f"{s.name}:{s.latest_status or 'unknown'}" for s in pipeline.stages)
    age = ""
    if pipeline.recency is not None:
        now_ms = now_ms if now_ms is not None else int(datetime.now(timezone.utc).timestamp() * 1000)
        age = f" ({max(0, now_ms - pipeline.recency) // 60000}m ago)"
    return f"{pipeline.name:<32} ok{age}  {stages}".rstrip()


@app.command()
def snapshot(
    ctx: typer.Context,
    query: Optional[str] = typer.Option(None, "--query", help="Page query string, e.g. '?refresh=30'"),
) -> None:
    """Run one refresh cycle and print the published pipelines as JSON."""

    settings: Settings = ctx.obj["settings"]
    run_ctx, logger = _start_command(settings, "snapshot")
    transport, scheduler = _build_scheduler(
        settings, settings.refresh_config(query), logger=logger, run_id=run_ctx.run_id
    )

    async def _run() -> Optional[Tuple[PipelineSummary, ...]]:
        try:
            return await scheduler.refresh_all()
        finally:
            scheduler.close()

    try:
        pipelines = asyncio.run(_run())
    finally:
        transport.close()

    if pipelines is None:
        logger.log(run_summary_event(ctx=run_ctx, status_counts={"ok": 0, "error": 1}))
        typer.echo("refresh failed; see log for details", err=True)
        raise typer.Exit(code=1)

    typer.echo(json.dumps([p.to_dict() for p in pipelines], indent=2, ensure_ascii=False))
    logger.log(run_summary_event(ctx=run_ctx, status_counts=status_counts(pipelines)))


@app.command()
def watch(
    ctx: typer.Context,
    query: Optional[str] = typer.Option(None, "--query", help="Page query string, e.g. '?refresh=30'"),
    cycles: Optional[int] = typer.Option(None, "--cycles", min=1, help="Stop after N published refreshes"),
) -> None:
    """Poll the grid like the dashboard does and print every published refresh."""

    settings: Settings = ctx.obj["settings"]
    refresh = settings.refresh_config(query)
    run_ctx, logger = _start_command(
        settings, "watch", interval_millis=refresh.interval_millis, cycles=cycles
    )
    transport, scheduler = _build_scheduler(settings, refresh, logger=logger, run_id=run_ctx.run_id)

    # Without polling there is exactly one refresh to wait for.
    limit = cycles if refresh.polling else 1
    published: List[Tuple[PipelineSummary, ...]] = []

    async def _run() -> None:
        done = asyncio.Event()

        def _on_change(previous: EngineState, current: EngineState) -> None:
            if current.pipelines is previous.pipelines:
                return
            published.append(current.pipelines)
            stamp = current.refreshed_at.isoformat() if current.refreshed_at else "-"
            typer.echo(f"--- refresh {len(published)} at {stamp}")
            for pipeline in current.pipelines:
                typer.echo(format_pipeline_line(pipeline))
            if limit is not None and len(published) >= limit:
                done.set()

        unsubscribe = scheduler.state.subscribe(_on_change)
        first = scheduler.on_enter_grid()
        try:
            if not refresh.polling and await first is None:
                return
            await done.wait()
        finally:
            unsubscribe()
            scheduler.on_leave_grid()
            scheduler.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.log({"event": "watch_interrupted", "run_id": run_ctx.run_id})
    finally:
        transport.close()

    last = published[-1] if published else ()
    logger.log(run_summary_event(ctx=run_ctx, status_counts=status_counts(last)))
    if not published:
        raise typer.Exit(code=1)


@app.command()
def detail(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Pipeline name"),
) -> None:
    """Load one pipeline the way the detail view does and print it as JSON."""

    settings: Settings = ctx.obj["settings"]
    run_ctx, logger = _start_command(settings, "detail", pipeline=name)
    transport, scheduler = _build_scheduler(
        settings, RefreshConfig(interval_millis=0, is_static=True), logger=logger, run_id=run_ctx.run_id
    )

    async def _run() -> Optional[PipelineSummary]:
        try:
            return await scheduler.load_detail(name)
        finally:
            scheduler.close()

    try:
        pipeline = asyncio.run(_run())
    finally:
        transport.close()

    if pipeline is None:
        raise typer.Exit(code=1)

    typer.echo(json.dumps(pipeline.to_dict(), indent=2, ensure_ascii=False))
    logger.log(run_summary_event(ctx=run_ctx, status_counts=status_counts([pipeline])))
    if not pipeline.ok:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()

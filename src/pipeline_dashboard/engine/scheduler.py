from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple

from pipeline_dashboard.engine.recency import sort_by_recency
from pipeline_dashboard.engine.state import PublishedState
from pipeline_dashboard.errors import StaleResultDiscarded
from pipeline_dashboard.logging_utils import JsonlLogger, engine_event, failure_fields, publish_fields
from pipeline_dashboard.models import PipelineSummary
from pipeline_dashboard.refresh import RefreshConfig
from pipeline_dashboard.sources.pipelines import PipelineDataSource

logger = logging.getLogger(__name__)

ReloadView = Callable[[], Any]


class AggregationScheduler:
    """Fetch all pipelines, aggregate, sort and publish; own the refresh timer.

    The navigation collaborator calls the lifecycle hooks serially from inside
    the running event loop:
      - on_enter_grid():   refresh now, then every interval (if polling)
      - on_leave_grid():   stop the timer, void in-flight requests
      - on_enter_detail(): load one pipeline, then reload the view every interval

    Hooks never raise; every failure is contained in refresh_all()/load_detail().
    """

    def __init__(
        self,
        source: PipelineDataSource,
        config: RefreshConfig,
        *,
        state: Optional[PublishedState] = None,
        event_log: Optional[JsonlLogger] = None,
        run_id: Optional[str] = None,
        reload_view: Optional[ReloadView] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.source = source
        self.sequencer = source.sequencer
        self.config = config
        self.state = state or PublishedState()
        self._event_log = event_log
        self._run_id = run_id
        self._reload_view = reload_view
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._timer: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._open_loads: Set[int] = set()
        self._load_counter = 0
        self._cycle_counter = 0
        self._published_cycle = 0
        self._detail_name: Optional[str] = None

    # -- lifecycle hooks -------------------------------------------------

    def on_enter_grid(self) -> asyncio.Task:
        self._cancel_timer()
        self._detail_name = None
        self.state._replace(detail=None)

        task = self._spawn(self.refresh_all(epoch=self.sequencer.epoch))
        if self.config.polling:
            self._start_timer(self.refresh_all, view="grid")
        return task

    def on_leave_grid(self) -> None:
        """Reset to idle: stop polling and void every request issued so far.

        Called on any navigation away from the current view.
        """

        self._cancel_timer()
        self.sequencer.clear()
        self._open_loads.clear()
        self.state._replace(loading=False)

    def on_enter_detail(self, name: Optional[str] = None) -> Optional[asyncio.Task]:
        self._cancel_timer()
        self._detail_name = name

        task = self._spawn(self.load_detail(name, epoch=self.sequencer.epoch)) if name is not None else None
        if self.config.polling:
            self._start_timer(self._reload, view="detail")
        return task

    def close(self) -> None:
        self._cancel_timer()
        self.sequencer.clear()
        for task in list(self._tasks):
            task.cancel()
        self._open_loads.clear()
        self.state._replace(loading=False)

    # -- aggregation -----------------------------------------------------

    async def refresh_all(self, *, epoch: Optional[int] = None) -> Optional[Tuple[PipelineSummary, ...]]:
        """Run one fetch -> aggregate -> sort -> publish cycle.

        Returns the published pipelines, or None when the cycle was aborted
        (list failure), discarded (stale epoch) or superseded by a newer cycle.
        `loading` is true for as long as any current cycle is open.
        """

        self._cycle_counter += 1
        cycle = self._cycle_counter
        epoch = self.sequencer.epoch if epoch is None else epoch
        if not self.sequencer.is_current(epoch):
            # Hook-scheduled cycle that never started before navigation moved on.
            self._emit("refresh_discarded", cycle=cycle, reason="stale", epoch=epoch)
            return None

        token = self._open_load()
        self._emit("refresh_start", cycle=cycle, epoch=epoch)

        try:
            names = await self.source.list_names()
            pipelines = await self.fetch_all_details(names, cycle=cycle)

            if not self.sequencer.is_current(epoch):
                raise StaleResultDiscarded(epoch, self.sequencer.epoch)
            if cycle < self._published_cycle:
                self._emit("refresh_discarded", cycle=cycle, reason="superseded")
                return None

            ordered = tuple(sort_by_recency(pipelines))
            self._published_cycle = cycle
            self.state._replace(pipelines=ordered, refreshed_at=self._clock())

            self._emit("refresh_published", cycle=cycle, **publish_fields(ordered))
            return ordered
        except StaleResultDiscarded as exc:
            logger.debug("Refresh cycle %d discarded: %s", cycle, exc)
            self._emit("refresh_discarded", cycle=cycle, reason="stale", epoch=epoch)
            return None
        except Exception as exc:
            logger.warning("Refresh cycle %d aborted: %s", cycle, exc)
            self._emit("refresh_aborted", cycle=cycle, **failure_fields(exc))
            return None
        finally:
            self._close_load(token)

    async def fetch_all_details(self, names: List[str], *, cycle: int = 0) -> List[PipelineSummary]:
        """Fetch every pipeline concurrently into a slot per name position.

        Slots are filled by index, not completion order, so the result follows
        `names`. Waits for all fetches to settle; a failed fetch becomes an
        error entry instead of failing the whole batch. Raises
        StaleResultDiscarded if any fetch came back from a cleared epoch.
        """

        slots: List[Optional[PipelineSummary]] = [None] * len(names)

        async def _fill(index: int, name: str) -> None:
            slots[index] = await self.source.get_details(name)

        outcomes = await asyncio.gather(
            *(_fill(i, name) for i, name in enumerate(names)),
            return_exceptions=True,
        )

        for outcome in outcomes:
            if isinstance(outcome, StaleResultDiscarded):
                raise outcome

        for index, outcome in enumerate(outcomes):
            if not isinstance(outcome, BaseException):
                continue
            name = names[index]
            slots[index] = PipelineSummary.failed(name, outcome)
            self._emit("pipeline_fetch_failed", cycle=cycle, pipeline=name, **failure_fields(outcome))

        return [slot for slot in slots if slot is not None]

    async def load_detail(self, name: str, *, epoch: Optional[int] = None) -> Optional[PipelineSummary]:
        epoch = self.sequencer.epoch if epoch is None else epoch
        if not self.sequencer.is_current(epoch):
            return None

        token = self._open_load()
        try:
            try:
                detail = await self.source.get_details(name)
            except StaleResultDiscarded:
                self._emit("refresh_discarded", pipeline=name, reason="stale")
                return None
            except Exception as exc:
                detail = PipelineSummary.failed(name, exc)
                self._emit("detail_failed", pipeline=name, **failure_fields(exc))
            else:
                self._emit("detail_loaded", pipeline=name, stages=len(detail.stages))

            self.state._replace(detail=detail)
            return detail
        finally:
            self._close_load(token)

    # -- internals -------------------------------------------------------

    def _open_load(self) -> int:
        self._load_counter += 1
        token = self._load_counter
        self._open_loads.add(token)
        self.state._replace(loading=True)
        return token

    def _close_load(self, token: int) -> None:
        # Loads voided by on_leave_grid() no longer own the loading flag.
        if token not in self._open_loads:
            return
        self._open_loads.discard(token)
        self.state._replace(loading=bool(self._open_loads))

    async def _reload(self, *, epoch: Optional[int] = None) -> None:
        if epoch is not None and not self.sequencer.is_current(epoch):
            return
        if self._reload_view is None:
            if self._detail_name is not None:
                await self.load_detail(self._detail_name, epoch=epoch)
            return

        try:
            result = self._reload_view()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("View reload failed")

    def _start_timer(self, action: Callable[..., Awaitable[Any]], *, view: str) -> None:
        self._timer = asyncio.create_task(self._run_every(action))
        self._emit("timer_started", view=view, interval_millis=self.config.interval_millis)

    async def _run_every(self, action: Callable[..., Awaitable[Any]]) -> None:
        # Like setInterval: ticks do not wait for the previous run to finish.
        while True:
            await asyncio.sleep(self.config.interval_s)
            self._spawn(action(epoch=self.sequencer.epoch))

    def _cancel_timer(self) -> None:
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        self._emit("timer_cancelled")

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _emit(self, event: str, **fields: Any) -> None:
        if self._event_log is None:
            return
        self._event_log.log(engine_event(event, at=self._clock(), run_id=self._run_id, **fields))

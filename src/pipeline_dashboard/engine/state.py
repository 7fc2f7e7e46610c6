from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable, List, Tuple

from pipeline_dashboard.models import EngineState, PipelineSummary

logger = logging.getLogger(__name__)

StateListener = Callable[[EngineState, EngineState], None]


class PublishedState:
    """Holder of the current EngineState snapshot.

    Readers get the snapshot or subscribe to (previous, current) changes.
    The scheduler is the only writer; every write swaps in a new snapshot in
    one step without awaiting, so observers never see a partial update.
    """

    def __init__(self, initial: EngineState | None = None) -> None:
        self._snapshot = initial or EngineState()
        self._listeners: List[StateListener] = []

    @property
    def snapshot(self) -> EngineState:
        return self._snapshot

    @property
    def pipelines(self) -> Tuple[PipelineSummary, ...]:
        return self._snapshot.pipelines

    @property
    def loading(self) -> bool:
        return self._snapshot.loading

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _replace(self, **changes: Any) -> EngineState:
        previous = self._snapshot
        current = dataclasses.replace(previous, **changes)
        if current == previous:
            return previous

        self._snapshot = current
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception:
                logger.exception("State listener %r failed", listener)
        return current

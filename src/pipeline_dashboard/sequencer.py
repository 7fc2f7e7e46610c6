from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

from pipeline_dashboard.errors import StaleResultDiscarded
from pipeline_dashboard.transport import HttpTransport

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RequestSequencer:
    """Stamp every request with the current epoch and drop results from old epochs.

    Cancellation is logical: `clear()` only bumps the epoch. Requests already on
    the wire still complete, but their outcome (value or exception) is replaced
    by `StaleResultDiscarded` once they resolve.

    Epoch reads and writes happen on the event loop thread only, so the counter
    needs no lock.
    """

    def __init__(self, transport: HttpTransport) -> None:
        self.transport = transport
        self._epoch = 0

    @property
    def epoch(self) -> int:
        return self._epoch

    def clear(self) -> None:
        self._epoch += 1
        logger.debug("Sequencer cleared, epoch is now %d", self._epoch)

    def is_current(self, epoch: int) -> bool:
        return epoch == self._epoch

    def issue(self, operation: Callable[[], Awaitable[T]]) -> Awaitable[T]:
        """Run `operation` under the epoch active right now (at call time).

        The returned awaitable yields the operation's result, or raises
        StaleResultDiscarded if `clear()` ran before it resolved.
        """
        return self._settle(self._epoch, operation)

    async def _settle(self, issued: int, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            result = await operation()
        except StaleResultDiscarded:
            raise
        except Exception as exc:
            if issued != self._epoch:
                raise StaleResultDiscarded(issued, self._epoch) from exc
            raise

        if issued != self._epoch:
            logger.debug("Discarding result from epoch %d (current %d)", issued, self._epoch)
            raise StaleResultDiscarded(issued, self._epoch)
        return result

    def get_json(self, path: str) -> Awaitable[Any]:
        return self.issue(lambda: self.transport.get_json(path))

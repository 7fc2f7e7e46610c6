from __future__ import annotations

from typing import Optional


class DataFetchError(Exception):
    """A read against the pipeline API failed.

    Carries the endpoint that was requested and the underlying cause.
    """

    def __init__(self, endpoint: str, cause: Optional[BaseException] = None, message: Optional[str] = None) -> None:
        detail = message or (f"{type(cause).__name__}: {cause}" if cause is not None else "request failed")
        super().__init__(f"{endpoint}: {detail}")
        self.endpoint = endpoint
        self.cause = cause


class TransportError(DataFetchError):
    """The request could not complete (connection, timeout, non-2xx status)."""


class DecodeError(DataFetchError):
    """The response body could not be decoded into the expected shape."""


class StaleResultDiscarded(Exception):
    """Result of a request issued under an epoch that has since been cleared.

    Not a user-facing error: callers treat it as an abandoned request and do nothing.
    """

    def __init__(self, issued_epoch: int, current_epoch: int) -> None:
        super().__init__(f"stale result discarded (issued epoch {issued_epoch}, current epoch {current_epoch})")
        self.issued_epoch = issued_epoch
        self.current_epoch = current_epoch

from __future__ import annotations

import asyncio
from typing import Any, Optional, Protocol

import requests

from pipeline_dashboard.errors import DecodeError, TransportError


class HttpTransport(Protocol):
    async def get_json(self, path: str) -> Any:
        ...


class RequestsTransport:
    """Read-only JSON transport for the pipeline API.

    Each GET runs the blocking `requests` call in a worker thread, so the
    `await` in `get_json` is the only point where the event loop suspends.

    Notes:
    - No retry: a failed read surfaces immediately as TransportError.
    - requests' timeout is (connect, read); a hung server keeps the call open
      at most `timeout_s`.
    - Fan-out reads run on several worker threads at once. By default each one
      goes through module-level `requests.get` (a fresh connection per call)
      because `requests.Session` is not documented as thread-safe. A caller
      that injects a session owns that guarantee and its lifetime.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 20.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = float(timeout_s)
        self._session = session

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def get_json(self, path: str) -> Any:
        return await asyncio.to_thread(self._get_json_blocking, path)

    def _get_json_blocking(self, path: str) -> Any:
        url = self.url_for(path)
        timeout = (min(5.0, self.timeout_s), self.timeout_s)
        get = self._session.get if self._session is not None else requests.get

        try:
            resp = get(url, headers={"Accept": "application/json"}, timeout=timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise TransportError(path, exc) from exc

        try:
            return resp.json()
        except ValueError as exc:
            raise DecodeError(path, exc, message=f"invalid JSON: {exc}") from exc

    def close(self) -> None:
        if self._session is not None:
            self._session.close()

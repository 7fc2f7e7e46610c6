from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Mapping, Optional
from urllib.parse import unquote_plus

DEFAULT_REFRESH_SECONDS = 60


@dataclass(frozen=True)
class RefreshConfig:
    """Polling policy derived once per page load.

    interval_millis == 0 means "no polling".
    """

    interval_millis: int
    is_static: bool = False

    @property
    def polling(self) -> bool:
        return self.interval_millis > 0

    @property
    def interval_s(self) -> float:
        return self.interval_millis / 1000.0


def parse_refresh_config(params: Mapping[str, Optional[str]]) -> RefreshConfig:
    """Derive the refresh interval from page query parameters.

    Rules (first match wins):
      - `static` present with any value        -> 0
      - `refresh` absent or bare (value None)  -> 60 seconds
      - `refresh=` (empty string)              -> 0
      - `refresh=NN`                           -> NN seconds

    Non-numeric, negative or non-finite values coerce to 0. Malformed input
    never raises; it degrades to "no polling".
    """

    if "static" in params:
        return RefreshConfig(interval_millis=0, is_static=True)

    raw = params.get("refresh")
    if raw is None:
        return RefreshConfig(interval_millis=DEFAULT_REFRESH_SECONDS * 1000)

    return RefreshConfig(interval_millis=_coerce_millis(raw))


def parse_query_string(query: str) -> Dict[str, Optional[str]]:
    """Split a URL query string into a key -> value mapping.

    `?static&refresh=5` -> {"static": None, "refresh": "5"}. A key without `=`
    maps to None, `key=` maps to "". Duplicate keys are not supported; the
    last occurrence wins.
    """

    out: Dict[str, Optional[str]] = {}
    if query.startswith("?"):
        query = query[1:]

    for part in query.split("&"):
        if not part:
            continue
        if "=" in part:
            key, value = part.split("=", 1)
            out[unquote_plus(key)] = unquote_plus(value)
        else:
            out[unquote_plus(part)] = None
    return out


def refresh_config_from_query(query: str) -> RefreshConfig:
    return parse_refresh_config(parse_query_string(query))


def _coerce_millis(raw: str) -> int:
    text = raw.strip()
    if not text:
        return 0
    try:
        seconds = float(text)
    except ValueError:
        return 0
    if not math.isfinite(seconds) or seconds <= 0:
        return 0
    return int(seconds * 1000)

from __future__ import annotations

import pytest

from pipeline_dashboard.refresh import (
    RefreshConfig,
    parse_query_string,
    parse_refresh_config,
    refresh_config_from_query,
)


@pytest.mark.parametrize(
    "params,expected",
    [
        ({}, 60000),
        ({"refresh": None}, 60000),
        ({"refresh": ""}, 0),
        ({"refresh": "5"}, 5000),
        ({"static": ""}, 0),
        ({"static": None, "refresh": "5"}, 0),
        ({"static": "", "refresh": None}, 0),
    ],
)
def test_refresh_parsing_table(params, expected) -> None:
    assert parse_refresh_config(params).interval_millis == expected


def test_static_flag_is_recorded() -> None:
    cfg = parse_refresh_config({"static": None, "refresh": "30"})
    assert cfg == RefreshConfig(interval_millis=0, is_static=True)
    assert not cfg.polling


@pytest.mark.parametrize("raw", ["abc", "-5", "nan", "inf", "   "])
def test_non_numeric_refresh_degrades_to_no_polling(raw: str) -> None:
    cfg = parse_refresh_config({"refresh": raw})
    assert cfg.interval_millis == 0
    assert not cfg.polling


def test_fractional_and_padded_seconds_are_coerced() -> None:
    assert parse_refresh_config({"refresh": "1.5"}).interval_millis == 1500
    assert parse_refresh_config({"refresh": " 10 "}).interval_millis == 10000


def test_parse_query_string_distinguishes_bare_and_empty() -> None:
    assert parse_query_string("?static&refresh=") == {"static": None, "refresh": ""}
    assert parse_query_string("refresh") == {"refresh": None}
    assert parse_query_string("") == {}
    assert parse_query_string("a=1&&b=x%20y") == {"a": "1", "b": "x y"}


def test_refresh_config_from_query() -> None:
    assert refresh_config_from_query("").interval_millis == 60000
    assert refresh_config_from_query("?refresh").interval_millis == 60000
    assert refresh_config_from_query("?refresh=").interval_millis == 0
    assert refresh_config_from_query("?refresh=30").interval_millis == 30000
    assert refresh_config_from_query("?static&refresh=30").interval_millis == 0
    assert refresh_config_from_query("?refresh=30").interval_s == 30.0

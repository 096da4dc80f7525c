from __future__ import annotations

import math

import pandas as pd
import pytest

from clinic_locale import (
    START_DATE,
    TOKYO_TZ,
    extract_month_options,
    is_on_or_after_start,
    normalize_name_for_matching,
    parse_jst_date,
    parse_number,
    parse_percent,
    to_date_key,
    to_month_key,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("1,234", 1234.0),
        (" 12.5 ", 12.5),
        (7, 7),
        ("-3", -3.0),
    ],
)
def test_parse_number_accepts_common_shapes(value, expected):
    assert parse_number(value) == expected


@pytest.mark.parametrize("value", [None, "", "   ", "abc", "1_000", "nan", float("nan"), True])
def test_parse_number_returns_none_for_unusable_input(value):
    assert parse_number(value) is None


def test_parse_percent_divides_by_hundred():
    assert parse_percent("16%") == pytest.approx(0.16)
    assert parse_percent(16) == pytest.approx(0.16)
    assert parse_percent("2.5") == pytest.approx(0.025)
    assert parse_percent("") is None
    assert parse_percent("n/a") is None


@pytest.mark.parametrize(
    "text, expected",
    [
        ("2025-10-02 09:30", "2025-10-02 09:30:00"),
        ("2025-10-02 9:30:15", "2025-10-02 09:30:15"),
        ("2025/10/2 9:05", "2025-10-02 09:05:00"),
        ("2025-10-02", "2025-10-02 00:00:00"),
        ("2025/1/7", "2025-01-07 00:00:00"),
    ],
)
def test_parse_jst_date_shapes_are_tokyo_wall_clock(text, expected):
    parsed = parse_jst_date(text)
    assert parsed == pd.Timestamp(expected, tz=TOKYO_TZ)
    assert str(parsed.tz) == TOKYO_TZ


def test_parse_jst_date_converts_explicit_offsets():
    parsed = parse_jst_date("2025-10-01T15:00:00Z")
    assert parsed == pd.Timestamp("2025-10-02 00:00", tz=TOKYO_TZ)


@pytest.mark.parametrize("text", [None, "", "not a date", "2025/2/30", "10/02/2025", "2025-13-01 10:00"])
def test_parse_jst_date_returns_none_for_invalid(text):
    assert parse_jst_date(text) is None


def test_date_and_month_keys_use_tokyo_calendar():
    utc_evening = pd.Timestamp("2025-10-31T15:30:00Z")
    assert to_date_key(utc_evening) == "2025-11-01"
    assert to_month_key(utc_evening) == "2025-11"
    assert to_date_key(pd.Timestamp("2025-10-05 23:59")) == "2025-10-05"


def test_cutoff_boundary_is_inclusive():
    assert is_on_or_after_start(START_DATE)
    assert is_on_or_after_start(pd.Timestamp("2025-10-02 00:00", tz=TOKYO_TZ))
    assert not is_on_or_after_start(pd.Timestamp("2025-10-01 23:59:59", tz=TOKYO_TZ))
    # 2025-10-01 15:00 UTC is the cutoff instant itself.
    assert is_on_or_after_start(pd.Timestamp("2025-10-01T15:00:00Z"))


def test_extract_month_options_skips_data_before_cutoff():
    dates = [
        pd.Timestamp("2025-09-30", tz=TOKYO_TZ),
        pd.Timestamp("2025-11-01", tz=TOKYO_TZ),
        pd.Timestamp("2025-10-05", tz=TOKYO_TZ),
        pd.Timestamp("2025-10-20", tz=TOKYO_TZ),
        None,
    ]
    assert extract_month_options(dates) == ["2025-10", "2025-11"]


@pytest.mark.parametrize(
    "left, right",
    [
        ("タナカ　タロウ（たなか）", "たなかたろう"),
        ("ﾀﾅｶ ﾀﾛｳ", "たなかたろう"),
        ("山田 太郎(やまだ)", "山田太郎"),
    ],
)
def test_normalize_name_for_matching_collapses_variants(left, right):
    assert normalize_name_for_matching(left) == normalize_name_for_matching(right)


@pytest.mark.parametrize("value", [None, "", "   ", "（よみ）"])
def test_normalize_name_for_matching_empty_is_none(value):
    assert normalize_name_for_matching(value) is None


def test_parse_number_result_is_finite():
    value = parse_number("1e3")
    assert value == 1000.0 and math.isfinite(value)

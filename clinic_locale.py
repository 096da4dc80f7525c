"""Locale normalizers for Japanese clinic CSV exports.

Every CSV kind handled by this project shares the same low-level parsing
rules for numbers, percentages, dates and patient names. Keeping them here
guarantees that date bucketing and identity matching are computed the same
way in every dashboard section.

Conventions
-----------
- All timestamps are timezone-aware ``pandas.Timestamp`` objects zoned to
  Asia/Tokyo. Naive inputs are treated as Tokyo wall-clock time.
- Parsing helpers never raise on malformed data; they return ``None`` and
  leave the decision (error, warning, skip) to the caller.
"""

from __future__ import annotations

import math
import re
import unicodedata
from typing import Iterable, List, Optional, Union

import numpy as np
import pandas as pd


TOKYO_TZ = "Asia/Tokyo"

# Data strictly before this instant is excluded from all analysis.
START_DATE = pd.Timestamp("2025-10-02T00:00:00+09:00").tz_convert(TOKYO_TZ)

NumberLike = Union[str, int, float, None]


# ------------------------------ Numbers -------------------------------


def parse_number(value: NumberLike) -> Optional[float]:
    """Parse a numeric cell, tolerating thousands separators.

    Numbers pass through unchanged unless they are NaN. Strings are trimmed,
    stripped of ``,`` and parsed as float; empty or unparseable strings give
    ``None``.
    """

    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, np.integer, np.floating)):
        if isinstance(value, (float, np.floating)) and math.isnan(value):
            return None
        return value.item() if isinstance(value, np.generic) else value

    trimmed = str(value).strip()
    if not trimmed:
        return None

    cleaned = trimmed.replace(",", "")
    # float() accepts "1_000" and "nan"; CSV exports never mean either.
    if "_" in cleaned:
        return None
    try:
        number = float(cleaned)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_percent(value: NumberLike) -> Optional[float]:
    """Convert percentage points to a fraction (``"16%"`` and ``16`` -> 0.16)."""

    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, np.integer, np.floating)):
        number = parse_number(value)
        return None if number is None else number / 100

    trimmed = str(value).strip()
    if not trimmed:
        return None
    number = parse_number(trimmed.replace("%", ""))
    return None if number is None else number / 100


# ------------------------------- Dates --------------------------------

_DASH_DATETIME = re.compile(r"^(\d{4})-(\d{2})-(\d{2})\s+(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_SLASH_DATETIME = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})\s+(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_ISO_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
_SLASH_DATE = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")


def _build_tokyo_timestamp(match: re.Match) -> Optional[pd.Timestamp]:
    parts = [int(p) if p is not None else 0 for p in match.groups()]
    parts += [0] * (6 - len(parts))
    year, month, day, hour, minute, second = parts[:6]
    try:
        return pd.Timestamp(
            year=year,
            month=month,
            day=day,
            hour=hour,
            minute=minute,
            second=second,
            tz=TOKYO_TZ,
        )
    except (ValueError, OverflowError):
        return None


def _parse_iso(trimmed: str) -> Optional[pd.Timestamp]:
    parsed = pd.to_datetime(trimmed, errors="coerce")
    if parsed is None or pd.isna(parsed):
        return None
    return as_tokyo(parsed)


def parse_jst_date(value: Optional[str]) -> Optional[pd.Timestamp]:
    """Parse the date shapes found in clinic exports into a Tokyo timestamp.

    Shapes are tried in a fixed priority order, datetime forms first:

    1. ``yyyy-mm-dd h:mm[:ss]``
    2. ``yyyy/m/d h:mm[:ss]``
    3. ISO date or datetime (``yyyy-mm-dd`` prefix, offsets honoured)
    4. ``yyyy/m/d``

    Returns ``None`` for anything unrecognised or invalid (e.g. 2025/2/30).
    """

    if value is None:
        return None
    trimmed = str(value).strip()
    if not trimmed:
        return None

    match = _DASH_DATETIME.match(trimmed)
    if match:
        parsed = _build_tokyo_timestamp(match)
        if parsed is not None:
            return parsed

    match = _SLASH_DATETIME.match(trimmed)
    if match:
        parsed = _build_tokyo_timestamp(match)
        if parsed is not None:
            return parsed

    if _ISO_PREFIX.match(trimmed):
        parsed = _parse_iso(trimmed)
        if parsed is not None:
            return parsed

    match = _SLASH_DATE.match(trimmed)
    if match:
        return _build_tokyo_timestamp(match)

    return None


def as_tokyo(value) -> pd.Timestamp:
    """Return ``value`` as a Tokyo-zoned timestamp (naive means Tokyo time)."""

    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        return ts.tz_localize(TOKYO_TZ)
    return ts.tz_convert(TOKYO_TZ)


def to_date_key(value) -> str:
    return as_tokyo(value).strftime("%Y-%m-%d")


def to_month_key(value) -> str:
    return as_tokyo(value).strftime("%Y-%m")


def is_on_or_after_start(value) -> bool:
    """Inclusive comparison against the analysis cutoff (2025-10-02 JST)."""

    return as_tokyo(value) >= START_DATE


def extract_month_options(dates: Iterable) -> List[str]:
    """Sorted distinct month keys for dates on or after the cutoff."""

    months = {to_month_key(d) for d in dates if d is not None and is_on_or_after_start(d)}
    return sorted(months)


# ------------------------------- Names --------------------------------

_RUBY = re.compile(r"[（(][^）)]*[）)]")
_WHITESPACE = re.compile(r"\s+")
# Full-width katakana ァ..ヶ map onto hiragana ぁ..ゖ at a fixed offset.
_KATAKANA_TO_HIRAGANA = {code: code - 0x60 for code in range(0x30A1, 0x30F7)}


def normalize_name_for_matching(name: Optional[str]) -> Optional[str]:
    """Collapse superficial variants of a patient name.

    NFKC normalisation, ruby annotations in parentheses removed, whitespace
    collapsed, katakana folded to hiragana and all whitespace removed, so
    ``"タナカ　タロウ（たなか）"`` and ``"たなかたろう"`` compare equal.
    """

    if not name:
        return None

    text = unicodedata.normalize("NFKC", str(name))
    text = _RUBY.sub("", text)
    text = _WHITESPACE.sub(" ", text.replace("　", " ")).strip()
    if not text:
        return None

    folded = _WHITESPACE.sub("", text.translate(_KATAKANA_TO_HIRAGANA))
    return folded or None

"""Reservation, listing and survey rollups for the dashboard views.

All functions are pure: they take parsed record sequences from
`clinic_csv_parsers` and return plain lists/dicts (or small dataclasses)
sorted the way the charts consume them. Grouping keys are always the
Tokyo date/month keys from `clinic_locale` so every section buckets the
same record into the same day.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from clinic_csv_parsers import (
    DepartmentGroup,
    ListingRecord,
    ReservationRecord,
    SurveyRecord,
    VisitType,
)
from clinic_locale import as_tokyo, to_date_key, to_month_key


WEEKDAY_LABELS = ("月", "火", "水", "木", "金", "土", "日")
VISIT_TYPES = (VisitType.FIRST.value, VisitType.REVISIT.value)

# Groups whose first visits are driven by the internal-medicine listing ads.
DEFAULT_CORRELATION_GROUPS = (
    DepartmentGroup.INTERNAL_SURGICAL,
    DepartmentGroup.INTERNAL,
    DepartmentGroup.FEVER,
)


# ---------------------------- Reservations ----------------------------


def _reservation_frame(records: Sequence[ReservationRecord]) -> pd.DataFrame:
    columns = ["date", "month", "weekday", "hour", "group", "type", "count"]
    if not records:
        return pd.DataFrame(columns=columns)

    rows = []
    for record in records:
        ts = as_tokyo(record.date_time)
        rows.append(
            {
                "date": to_date_key(ts),
                "month": to_month_key(ts),
                "weekday": ts.dayofweek,
                "hour": ts.hour,
                "group": record.department_group.value,
                "type": record.type.value,
                "count": int(record.count),
            }
        )
    return pd.DataFrame(rows, columns=columns)


def _by_type(frame: pd.DataFrame, key: str) -> pd.DataFrame:
    """Pivot counts to one row per ``key`` with 初診/再診/total columns."""

    table = frame.pivot_table(index=key, columns="type", values="count", aggfunc="sum", fill_value=0)
    table = table.reindex(columns=list(VISIT_TYPES), fill_value=0)
    table["total"] = table.sum(axis=1)
    return table.sort_index()


def filter_reservations_by_month(
    records: Sequence[ReservationRecord], month: Optional[str]
) -> List[ReservationRecord]:
    if not month:
        return list(records)
    return [r for r in records if to_month_key(r.date_time) == month]


def aggregate_reservations_monthly(records: Sequence[ReservationRecord]) -> List[Dict[str, object]]:
    """Monthly 初診/再診/total counts, sorted by month key."""

    frame = _reservation_frame(records)
    if frame.empty:
        return []
    table = _by_type(frame, "month")
    return [
        {"month": month, **{t: int(row[t]) for t in VISIT_TYPES}, "total": int(row["total"])}
        for month, row in table.iterrows()
    ]


def aggregate_reservations_daily(records: Sequence[ReservationRecord]) -> List[Dict[str, object]]:
    frame = _reservation_frame(records)
    if frame.empty:
        return []
    table = _by_type(frame, "date")
    return [
        {"date": date, **{t: int(row[t]) for t in VISIT_TYPES}, "total": int(row["total"])}
        for date, row in table.iterrows()
    ]


def aggregate_reservations_weekday(records: Sequence[ReservationRecord]) -> List[Dict[str, object]]:
    """Totals per weekday (Mon..Sun) with the number of active days and the daily average.

    A day is active when it has at least one reservation; the average is
    ``total / active_days`` (0 when the weekday never occurs).
    """

    frame = _reservation_frame(records)
    totals = [0] * 7
    active_days = [0] * 7
    if not frame.empty:
        summed = frame.groupby("weekday")["count"].sum()
        days = frame.groupby("weekday")["date"].nunique()
        for weekday, total in summed.items():
            totals[int(weekday)] = int(total)
        for weekday, count in days.items():
            active_days[int(weekday)] = int(count)

    return [
        {
            "weekday": WEEKDAY_LABELS[i],
            "total": totals[i],
            "active_days": active_days[i],
            "average": round(totals[i] / active_days[i], 2) if active_days[i] else 0.0,
        }
        for i in range(7)
    ]


def aggregate_reservations_hourly(records: Sequence[ReservationRecord]) -> List[Dict[str, object]]:
    """24 buckets by Tokyo hour of the visit time."""

    frame = _reservation_frame(records)
    buckets = [{"hour": h, **{t: 0 for t in VISIT_TYPES}, "total": 0} for h in range(24)]
    if frame.empty:
        return buckets
    table = _by_type(frame, "hour")
    for hour, row in table.iterrows():
        bucket = buckets[int(hour)]
        for t in VISIT_TYPES:
            bucket[t] = int(row[t])
        bucket["total"] = int(row["total"])
    return buckets


# ---- Department breakdown ----


@dataclass
class DepartmentStats:
    department: DepartmentGroup
    type: VisitType
    total: int = 0
    hourly: List[int] = field(default_factory=lambda: [0] * 24)
    daily: Dict[str, int] = field(default_factory=dict)


def compute_department_stats(records: Sequence[ReservationRecord]) -> List[DepartmentStats]:
    """Group × visit-type totals with hourly and daily breakdowns, largest first."""

    stats: Dict[tuple, DepartmentStats] = {}
    for record in records:
        key = (record.department_group, record.type)
        entry = stats.get(key)
        if entry is None:
            entry = stats[key] = DepartmentStats(department=record.department_group, type=record.type)
        ts = as_tokyo(record.date_time)
        entry.total += record.count
        entry.hourly[ts.hour] += record.count
        date_key = to_date_key(ts)
        entry.daily[date_key] = entry.daily.get(date_key, 0) + record.count

    return sorted(stats.values(), key=lambda s: s.total, reverse=True)


def extract_top_departments(stats: Iterable[DepartmentStats], limit: int = 6) -> List[DepartmentGroup]:
    totals: Dict[DepartmentGroup, int] = {}
    for item in stats:
        totals[item.department] = totals.get(item.department, 0) + item.total
    ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
    return [department for department, _ in ranked[:limit]]


# ---- Listing vs reservations ----


@dataclass(frozen=True)
class CorrelationPoint:
    date: str
    listing_cv: float
    reservation_count: int
    highlight: bool


def build_correlation_series(
    listing: Sequence[ListingRecord],
    reservations: Sequence[ReservationRecord],
    target_groups: Sequence[DepartmentGroup] = DEFAULT_CORRELATION_GROUPS,
    month: Optional[str] = None,
) -> List[CorrelationPoint]:
    """Daily listing CV next to 初診 reservations of the target groups.

    Dates present in either source appear in the series; a day is
    highlighted when both values are positive.
    """

    listing_by_date: Dict[str, float] = {}
    for record in listing:
        if month and to_month_key(record.date) != month:
            continue
        date_key = to_date_key(record.date)
        listing_by_date[date_key] = listing_by_date.get(date_key, 0.0) + (record.cv or 0.0)

    groups = set(target_groups)
    reservations_by_date: Dict[str, int] = {}
    for record in filter_reservations_by_month(reservations, month):
        if record.type is not VisitType.FIRST or record.department_group not in groups:
            continue
        date_key = to_date_key(record.date_time)
        reservations_by_date[date_key] = reservations_by_date.get(date_key, 0) + record.count

    series = []
    for date in sorted(set(listing_by_date) | set(reservations_by_date)):
        cv = listing_by_date.get(date, 0.0)
        count = reservations_by_date.get(date, 0)
        series.append(CorrelationPoint(date=date, listing_cv=cv, reservation_count=count, highlight=cv > 0 and count > 0))
    return series


# --------------------------- Incrementality ---------------------------

INCREMENTALITY_SEGMENTS = ("all", "general", "fever", "endoscopy")
DEFAULT_LAG_HOURS = 48
DEFAULT_DISTRIBUTED_LAG_HOURS = 24

# First match wins, so fever is tested before the broader internal keywords.
_SEGMENT_KEYWORDS = (
    ("fever", ("発熱", "風邪")),
    ("general", ("総合診療", "内科")),
    ("endoscopy", ("内視鏡", "胃", "大腸")),
)
SURVEY_GOOGLE_CHANNELS = ("ネット検索(Google)", "Googleマップ")


@dataclass
class HourlyPoint:
    iso_hour: str
    date: str
    hour: int
    reservations: int
    true_first: int
    listing_cv: float


@dataclass
class DailyPoint:
    date: str
    reservations: int = 0
    true_first: int = 0
    listing_cv: float = 0.0
    survey_google: float = 0.0


@dataclass
class SegmentDataset:
    hourly: List[HourlyPoint]
    daily: List[DailyPoint]
    totals: Dict[str, float]


@dataclass
class LagCorrelation:
    lag: int
    correlation: float
    paired_samples: int


@dataclass
class DistributedLagResult:
    max_lag: int
    coefficients: List[float]
    total_effect: float
    r_squared: float
    sample_size: int


def reservation_segment(department: Optional[str]) -> Optional[str]:
    if not department:
        return None
    for segment, keywords in _SEGMENT_KEYWORDS:
        if any(keyword in department for keyword in keywords):
            return segment
    return None


def _hour_key(date_key: str, hour: int) -> str:
    return f"{date_key}T{hour:02d}:00:00+09:00"


def _survey_google(record: SurveyRecord) -> float:
    return sum(record.channels.get(channel) or 0.0 for channel in SURVEY_GOOGLE_CHANNELS)


def build_incrementality_dataset(
    reservations: Sequence[ReservationRecord],
    first_seen: Mapping[str, str],
    listing_internal: Sequence[ListingRecord] = (),
    listing_gastroscopy: Sequence[ListingRecord] = (),
    listing_colonoscopy: Sequence[ListingRecord] = (),
    survey_outpatient: Sequence[SurveyRecord] = (),
    survey_endoscopy: Sequence[SurveyRecord] = (),
) -> Dict[str, SegmentDataset]:
    """Hourly listing CV next to reservations and true first visits, per segment.

    Reservations are bucketed by booking hour (visit hour when the booking
    time is missing). A reservation is a true first visit when its
    identity was first seen on the visit date. Listing CV is spread over
    the listing's hour columns; surveys add daily Google answers.
    """

    rows = []
    for record in reservations:
        booked = as_tokyo(record.received_at if record.received_at is not None else record.date_time)
        hour_key = _hour_key(to_date_key(booked), booked.hour)
        seen = first_seen.get(record.identity_key) if record.identity_key else None
        true_first = record.count if seen is not None and seen[:10] == to_date_key(record.date_time) else 0
        segment = reservation_segment(record.department or record.department_group.value)
        for target in ("all", segment):
            if target:
                rows.append((target, hour_key, record.count, true_first, 0.0))

    listing_sources = (
        ("general", listing_internal),
        ("endoscopy", listing_gastroscopy),
        ("endoscopy", listing_colonoscopy),
    )
    for segment, listing in listing_sources:
        for record in listing:
            date_key = to_date_key(record.date)
            for hour, value in enumerate(record.hourly_cv):
                if not value:
                    continue
                for target in ("all", segment):
                    rows.append((target, _hour_key(date_key, hour), 0, 0, float(value)))

    survey_daily: Dict[str, Dict[str, float]] = {"general": {}, "fever": {}, "endoscopy": {}}
    survey_sources = (
        ("general", survey_outpatient, _survey_google),
        ("fever", survey_outpatient, lambda r: r.fever_google or 0.0),
        ("endoscopy", survey_endoscopy, _survey_google),
    )
    for segment, surveys, value_of in survey_sources:
        for record in surveys:
            value = value_of(record)
            if value > 0:
                date_key = to_date_key(record.date)
                survey_daily[segment][date_key] = survey_daily[segment].get(date_key, 0.0) + value

    frame = pd.DataFrame(rows, columns=["segment", "iso_hour", "reservations", "true_first", "listing_cv"])

    datasets = {}
    for segment in INCREMENTALITY_SEGMENTS:
        part = frame[frame["segment"] == segment]
        by_hour = part.groupby("iso_hour")[["reservations", "true_first", "listing_cv"]].sum().sort_index()
        hourly = [
            HourlyPoint(
                iso_hour=iso_hour,
                date=iso_hour[:10],
                hour=int(iso_hour[11:13]),
                reservations=int(row["reservations"]),
                true_first=int(row["true_first"]),
                listing_cv=float(row["listing_cv"]),
            )
            for iso_hour, row in by_hour.iterrows()
        ]

        daily: Dict[str, DailyPoint] = {}
        for point in hourly:
            day = daily.setdefault(point.date, DailyPoint(date=point.date))
            day.reservations += point.reservations
            day.true_first += point.true_first
            day.listing_cv += point.listing_cv
        for date_key, value in survey_daily.get(segment, {}).items():
            daily.setdefault(date_key, DailyPoint(date=date_key)).survey_google += value

        daily_points = [daily[key] for key in sorted(daily)]
        totals = {
            "reservations": sum(d.reservations for d in daily_points),
            "true_first": sum(d.true_first for d in daily_points),
            "listing_cv": sum(d.listing_cv for d in daily_points),
            "survey_google": sum(d.survey_google for d in daily_points),
        }
        datasets[segment] = SegmentDataset(hourly=hourly, daily=daily_points, totals=totals)
    return datasets


def _hourly_series(hourly: Sequence[HourlyPoint]):
    points = sorted(hourly, key=lambda p: p.iso_hour)
    source = np.array([p.listing_cv for p in points], dtype=float)
    target = np.array([p.true_first for p in points], dtype=float)
    return source, target


def _pearson(x: np.ndarray, y: np.ndarray) -> float:
    if x.std() == 0 or y.std() == 0:
        return 0.0
    return float(np.corrcoef(x, y)[0, 1])


def compute_lag_correlations(hourly: Sequence[HourlyPoint], max_lag: int = DEFAULT_LAG_HOURS) -> List[LagCorrelation]:
    """Pearson r of listing CV at hour t against true first visits at t + lag.

    Lags run from ``-max_lag`` to ``max_lag`` over consecutive points of the
    series; lags with fewer than two pairs are left out. Sorted by |r|,
    strongest first.
    """

    if not hourly:
        return []
    source, target = _hourly_series(hourly)
    n = len(source)

    results = []
    for lag in range(-max_lag, max_lag + 1):
        length = n - abs(lag)
        if length < 2:
            continue
        x = source[max(0, -lag):max(0, -lag) + length]
        y = target[max(0, lag):max(0, lag) + length]
        results.append(LagCorrelation(lag=lag, correlation=_pearson(x, y), paired_samples=length))

    results.sort(key=lambda r: abs(r.correlation), reverse=True)
    return results


def compute_distributed_lag_effect(
    hourly: Sequence[HourlyPoint], max_lag: int = DEFAULT_DISTRIBUTED_LAG_HOURS
) -> Optional[DistributedLagResult]:
    """OLS of true first visits on listing CV at lags ``0..max_lag``.

    ``coefficients`` is ``[intercept, lag0, lag1, ...]`` and the total effect
    is the sum of the lag coefficients. Returns None when there are fewer
    than ``max_lag + 2`` usable rows or the design matrix is singular.
    """

    if not hourly or max_lag < 0:
        return None
    source, target = _hourly_series(hourly)
    n = len(source)
    if n - max_lag < max_lag + 2:
        return None

    columns = [np.ones(n - max_lag)] + [source[max_lag - lag:n - lag] for lag in range(max_lag + 1)]
    design = np.column_stack(columns)
    y = target[max_lag:]

    coefficients, _, rank, _ = np.linalg.lstsq(design, y, rcond=None)
    if rank < design.shape[1]:
        return None

    predictions = design @ coefficients
    ss_tot = float(((y - y.mean()) ** 2).sum())
    ss_res = float(((y - predictions) ** 2).sum())
    r_squared = 1.0 if ss_tot == 0 else max(0.0, 1.0 - ss_res / ss_tot)

    return DistributedLagResult(
        max_lag=max_lag,
        coefficients=[float(c) for c in coefficients],
        total_effect=float(coefficients[1:].sum()),
        r_squared=r_squared,
        sample_size=len(y),
    )


# ------------------------------ Listings ------------------------------


def _listing_frame(records: Sequence[ListingRecord]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "month": to_month_key(r.date),
                "date": to_date_key(r.date),
                "amount": r.amount,
                "cv": r.cv,
                "cvr": r.cvr,
            }
            for r in records
        ],
        columns=["month", "date", "amount", "cv", "cvr"],
    )


def summarize_listing_monthly(records: Sequence[ListingRecord]) -> List[Dict[str, object]]:
    """Monthly ad totals: CV, spend, mean CVR, CPA and days with any value.

    Missing cells are skipped, never read as 0. CPA is spend / CV and is
    None for months without conversions.
    """

    frame = _listing_frame(records)
    if frame.empty:
        return []
    for column in ("amount", "cv", "cvr"):
        frame[column] = pd.to_numeric(frame[column], errors="coerce")

    summaries = []
    for month, group in frame.groupby("month", sort=True):
        total_cv = float(group["cv"].sum(skipna=True))
        total_amount = float(group["amount"].sum(skipna=True))
        mean_cvr = group["cvr"].mean(skipna=True)
        valid = group[["amount", "cv", "cvr"]].notna().any(axis=1)
        summaries.append(
            {
                "month": month,
                "total_cv": total_cv,
                "total_amount": total_amount,
                "average_cvr": None if pd.isna(mean_cvr) else float(mean_cvr),
                "cpa": total_amount / total_cv if total_cv > 0 else None,
                "valid_days": int(group.loc[valid, "date"].nunique()),
            }
        )
    return summaries


def aggregate_listing_hourly(records: Sequence[ListingRecord]) -> List[float]:
    """Sum of hourly CV across records (missing hours add nothing)."""

    totals = [0.0] * 24
    for record in records:
        for hour, value in enumerate(record.hourly_cv[:24]):
            if value is not None:
                totals[hour] += value
    return totals


# ------------------------------ Surveys -------------------------------


def summarize_survey_monthly(records: Sequence[SurveyRecord]) -> List[Dict[str, object]]:
    """Per-month channel totals; channels with no value in a month total 0."""

    months: Dict[str, Dict[str, float]] = {}
    fever: Dict[str, float] = {}
    for record in records:
        month = to_month_key(record.date)
        totals = months.setdefault(month, {})
        for channel, value in record.channels.items():
            totals[channel] = totals.get(channel, 0.0) + (value or 0.0)
        fever[month] = fever.get(month, 0.0) + (record.fever_google or 0.0)

    return [
        {"month": month, "channels": months[month], "fever_google": fever[month]}
        for month in sorted(months)
    ]

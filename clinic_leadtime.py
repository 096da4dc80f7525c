"""Booking lead-time metrics (time from booking to visit).

A reservation contributes when it carries both the booking timestamp
(``受信時刻JST``) and the visit timestamp. Intervals are measured in hours
and bucketed into ordered categories; bookings for the same Tokyo calendar
day always count as ``当日以内`` regardless of the hour difference.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np

from clinic_csv_parsers import ReservationRecord
from clinic_locale import as_tokyo, to_date_key


class LeadtimeCategory(str, Enum):
    SAME_DAY = "当日以内"
    NEXT_DAY = "翌日"
    WITHIN_3_DAYS = "3日以内"
    WITHIN_1_WEEK = "1週間以内"
    WITHIN_2_WEEKS = "2週間以内"
    LATER = "それ以降"


LEADTIME_CATEGORIES: List[LeadtimeCategory] = list(LeadtimeCategory)


@dataclass(frozen=True)
class LeadtimeConfig:
    """Exclusive upper bounds (hours) for the non same-day categories."""

    next_day_hours: float = 48
    three_days_hours: float = 72
    one_week_hours: float = 168
    two_weeks_hours: float = 336


DEFAULT_LEADTIME_CONFIG = LeadtimeConfig()


def _empty_counts() -> Dict[LeadtimeCategory, int]:
    return {category: 0 for category in LEADTIME_CATEGORIES}


def lead_time_hours(received_at, visit_at) -> Optional[float]:
    """Hours between booking and visit; None when either side is missing."""

    if received_at is None or visit_at is None:
        return None
    delta = as_tokyo(visit_at) - as_tokyo(received_at)
    return delta.total_seconds() / 3600


def categorize_lead_time(
    received_at, visit_at, config: LeadtimeConfig = DEFAULT_LEADTIME_CONFIG
) -> Optional[LeadtimeCategory]:
    """Bucket one booking; negative or missing intervals give None."""

    hours = lead_time_hours(received_at, visit_at)
    if hours is None or hours < 0:
        return None
    if to_date_key(received_at) == to_date_key(visit_at):
        return LeadtimeCategory.SAME_DAY
    if hours < config.next_day_hours:
        return LeadtimeCategory.NEXT_DAY
    if hours < config.three_days_hours:
        return LeadtimeCategory.WITHIN_3_DAYS
    if hours < config.one_week_hours:
        return LeadtimeCategory.WITHIN_1_WEEK
    if hours < config.two_weeks_hours:
        return LeadtimeCategory.WITHIN_2_WEEKS
    return LeadtimeCategory.LATER


# ------------------------------ Summaries -----------------------------


@dataclass
class LeadtimeSummary:
    total: int = 0
    average_hours: Optional[float] = None
    median_hours: Optional[float] = None
    p90_hours: Optional[float] = None
    same_day_count: int = 0
    same_day_rate: float = 0.0
    category_counts: Dict[LeadtimeCategory, int] = field(default_factory=_empty_counts)


def summarize_lead_times(samples: Sequence[tuple]) -> LeadtimeSummary:
    """Summarise ``(hours, category)`` pairs.

    p90 is the element at ``min(n - 1, floor(n * 0.9))`` of the sorted
    hours, so it is always an observed value.
    """

    if not samples:
        return LeadtimeSummary()

    hours = np.sort(np.asarray([h for h, _ in samples], dtype="float64"))
    counts = _empty_counts()
    for _, category in samples:
        counts[category] += 1

    n = len(hours)
    same_day = counts[LeadtimeCategory.SAME_DAY]
    return LeadtimeSummary(
        total=n,
        average_hours=float(hours.mean()),
        median_hours=float(np.median(hours)),
        p90_hours=float(hours[min(n - 1, int(np.floor(n * 0.9)))]),
        same_day_count=same_day,
        same_day_rate=same_day / n,
        category_counts=counts,
    )


def get_top_category(counts: Dict[LeadtimeCategory, int]) -> Optional[LeadtimeCategory]:
    """Most frequent category; ties go to the shorter lead time, None when empty."""

    top: Optional[LeadtimeCategory] = None
    top_count = 0
    for category in LEADTIME_CATEGORIES:
        count = counts.get(category, 0)
        if count > top_count:
            top, top_count = category, count
    return top


@dataclass
class LeadtimeHourStat:
    hour: int
    summary: LeadtimeSummary
    top_category: Optional[LeadtimeCategory]


@dataclass
class LeadtimeDepartmentStat:
    department: str
    summary: LeadtimeSummary


@dataclass
class LeadtimeMetrics:
    summary: LeadtimeSummary
    hour_stats: List[LeadtimeHourStat]
    department_stats: List[LeadtimeDepartmentStat]
    department_hour_stats: Dict[str, List[LeadtimeHourStat]] = field(default_factory=dict)


def _hour_stats(by_hour: Sequence[Sequence[tuple]]) -> List[LeadtimeHourStat]:
    stats = []
    for hour, samples in enumerate(by_hour):
        summary = summarize_lead_times(samples)
        stats.append(LeadtimeHourStat(hour=hour, summary=summary, top_category=get_top_category(summary.category_counts)))
    return stats


def aggregate_leadtime_metrics(
    reservations: Sequence[ReservationRecord], config: LeadtimeConfig = DEFAULT_LEADTIME_CONFIG
) -> LeadtimeMetrics:
    """Overall, per booking hour, per department and per department hour summaries.

    Reservations without a booking timestamp or booked after the visit are
    ignored. Each reservation counts once regardless of its ``count``.
    """

    overall: List[tuple] = []
    by_hour: List[List[tuple]] = [[] for _ in range(24)]
    by_department: Dict[str, List[tuple]] = {}
    by_department_hour: Dict[str, List[List[tuple]]] = {}

    for record in reservations:
        if record.received_at is None:
            continue
        category = categorize_lead_time(record.received_at, record.date_time, config)
        if category is None:
            continue
        sample = (lead_time_hours(record.received_at, record.date_time), category)
        overall.append(sample)
        hour = as_tokyo(record.received_at).hour
        by_hour[hour].append(sample)
        department = record.department or record.department_group.value
        by_department.setdefault(department, []).append(sample)
        by_department_hour.setdefault(department, [[] for _ in range(24)])[hour].append(sample)

    hour_stats = _hour_stats(by_hour)

    department_stats = [
        LeadtimeDepartmentStat(department=name, summary=summarize_lead_times(samples))
        for name, samples in by_department.items()
    ]
    department_stats.sort(key=lambda s: s.summary.total, reverse=True)

    return LeadtimeMetrics(
        summary=summarize_lead_times(overall),
        hour_stats=hour_stats,
        department_stats=department_stats,
        department_hour_stats={name: _hour_stats(hours) for name, hours in by_department_hour.items()},
    )

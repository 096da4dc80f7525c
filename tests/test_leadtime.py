from __future__ import annotations

import pytest

from clinic_csv_parsers import DepartmentGroup
from clinic_leadtime import (
    LeadtimeCategory,
    LeadtimeConfig,
    aggregate_leadtime_metrics,
    categorize_lead_time,
    get_top_category,
    lead_time_hours,
    summarize_lead_times,
)
from conftest import jst, make_reservation


VISIT = "2025-10-20 10:00"


@pytest.mark.parametrize(
    "received, expected",
    [
        ("2025-10-20 08:00", LeadtimeCategory.SAME_DAY),
        ("2025-10-19 23:00", LeadtimeCategory.NEXT_DAY),
        # exactly 48h before is no longer "next day"
        ("2025-10-18 10:00", LeadtimeCategory.WITHIN_3_DAYS),
        ("2025-10-17 10:00", LeadtimeCategory.WITHIN_1_WEEK),
        ("2025-10-13 10:00:01", LeadtimeCategory.WITHIN_1_WEEK),
        ("2025-10-13 10:00", LeadtimeCategory.WITHIN_2_WEEKS),
        ("2025-10-06 10:00", LeadtimeCategory.LATER),
    ],
)
def test_category_boundaries(received, expected):
    assert categorize_lead_time(jst(received), jst(VISIT)) is expected


def test_same_calendar_day_wins_even_late_in_the_day():
    assert categorize_lead_time(jst("2025-10-20 00:01"), jst("2025-10-20 23:59")) is LeadtimeCategory.SAME_DAY


def test_negative_and_missing_intervals_are_ignored():
    assert categorize_lead_time(jst("2025-10-21 09:00"), jst(VISIT)) is None
    assert categorize_lead_time(None, jst(VISIT)) is None
    assert lead_time_hours(None, jst(VISIT)) is None
    assert lead_time_hours(jst("2025-10-19 10:00"), jst(VISIT)) == 24.0


def test_custom_config_moves_cut_points():
    config = LeadtimeConfig(next_day_hours=24)
    assert categorize_lead_time(jst("2025-10-19 09:00"), jst(VISIT), config) is LeadtimeCategory.WITHIN_3_DAYS


def test_empty_summary():
    summary = summarize_lead_times([])
    assert summary.total == 0
    assert summary.average_hours is None
    assert summary.median_hours is None
    assert summary.p90_hours is None
    assert summary.same_day_rate == 0.0
    assert set(summary.category_counts.values()) == {0}


def test_summary_statistics():
    samples = [(float(h), LeadtimeCategory.LATER) for h in range(1, 11)]
    samples[0] = (1.0, LeadtimeCategory.SAME_DAY)
    summary = summarize_lead_times(samples)

    assert summary.total == 10
    assert summary.average_hours == pytest.approx(5.5)
    assert summary.median_hours == pytest.approx(5.5)
    # sorted[min(9, floor(9.0))]
    assert summary.p90_hours == 10.0
    assert summary.same_day_count == 1
    assert summary.same_day_rate == pytest.approx(0.1)
    assert summary.category_counts[LeadtimeCategory.LATER] == 9


def test_top_category():
    counts = {category: 0 for category in LeadtimeCategory}
    assert get_top_category(counts) is None
    counts[LeadtimeCategory.NEXT_DAY] = 2
    counts[LeadtimeCategory.LATER] = 2
    assert get_top_category(counts) is LeadtimeCategory.NEXT_DAY
    counts[LeadtimeCategory.LATER] = 3
    assert get_top_category(counts) is LeadtimeCategory.LATER


def test_aggregate_metrics_groups_by_booking_hour_and_department():
    reservations = [
        make_reservation(VISIT, received="2025-10-20 08:30", department="内科外来", count=5),
        make_reservation(VISIT, received="2025-10-19 08:10", department="内科外来"),
        make_reservation(VISIT, received="2025-10-18 15:00", department="", group=DepartmentGroup.FEVER),
        # booked after the visit
        make_reservation(VISIT, received="2025-10-21 08:00"),
        make_reservation(VISIT),
    ]
    metrics = aggregate_leadtime_metrics(reservations)

    assert metrics.summary.total == 3
    assert metrics.summary.same_day_count == 1

    assert len(metrics.hour_stats) == 24
    eight = metrics.hour_stats[8]
    assert eight.summary.total == 2
    assert eight.top_category is LeadtimeCategory.SAME_DAY
    assert metrics.hour_stats[15].top_category is LeadtimeCategory.NEXT_DAY
    assert metrics.hour_stats[0].top_category is None

    assert [(d.department, d.summary.total) for d in metrics.department_stats] == [
        ("内科外来", 2),
        ("発熱外来", 1),
    ]


def test_aggregate_metrics_splits_each_department_by_booking_hour():
    reservations = [
        make_reservation(VISIT, received="2025-10-20 08:30", department="内科外来"),
        make_reservation(VISIT, received="2025-10-19 08:10", department="内科外来"),
        make_reservation(VISIT, received="2025-10-18 15:00", department="", group=DepartmentGroup.FEVER),
    ]
    metrics = aggregate_leadtime_metrics(reservations)

    assert set(metrics.department_hour_stats) == {"内科外来", "発熱外来"}
    internal = metrics.department_hour_stats["内科外来"]
    assert [stat.hour for stat in internal] == list(range(24))
    assert internal[8].summary.total == 2
    assert internal[8].top_category is LeadtimeCategory.SAME_DAY
    assert internal[15].summary.total == 0
    assert internal[15].top_category is None

    fever = metrics.department_hour_stats["発熱外来"]
    assert fever[15].summary.total == 1
    assert sum(stat.summary.total for stat in fever) == 1

"""First-visit vs repeat-visit classification.

Karte and reservation records are joined on their identity key. The
first-seen index built over every observed event is the ground truth: an
identity whose earliest event falls on the record's own day is a new
patient; an identity seen on an earlier day is returning, even when the
source labels the visit as 初診 (for example a patient coming back after
a long gap).

Categories
----------
- ``pureFirst``       first time the identity is seen at all
- ``returningFirst``  labelled 初診 but the identity was seen before
- ``revisit``         labelled 再診 (or unlabeled and seen before)
- ``unknown``         no identity key and no usable label
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Generic, Iterable, List, Mapping, Optional, Sequence, TypeVar

from clinic_csv_parsers import KarteRecord, ReservationRecord, VisitType
from clinic_locale import as_tokyo
from clinic_patient_identity import PatientEvent, build_first_seen_index


R = TypeVar("R")

MAX_VALID_AGE = 120


class VisitCategory(str, Enum):
    PURE_FIRST = "pureFirst"
    RETURNING_FIRST = "returningFirst"
    REVISIT = "revisit"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClassifiedVisit(Generic[R]):
    record: R
    category: VisitCategory


# ---- Events ----


def karte_occurred_at(record: KarteRecord) -> str:
    return f"{record.date_iso}T00:00:00+09:00"


def reservation_occurred_at(record: ReservationRecord) -> str:
    """Visit time with the Tokyo offset.

    The booking time is ignored: a patient booked days ahead has not been
    seen before the visit itself.
    """

    return as_tokyo(record.date_time).isoformat()


def build_identity_events(
    karte: Iterable[KarteRecord] = (),
    reservations: Iterable[ReservationRecord] = (),
) -> List[PatientEvent]:
    events = [PatientEvent(r.identity_key, karte_occurred_at(r)) for r in karte]
    events.extend(PatientEvent(r.identity_key, reservation_occurred_at(r)) for r in reservations)
    return events


# ---- Rule ----


def classify_visit(
    visit_type: VisitType,
    identity_key: Optional[str],
    occurred_at: str,
    first_seen: Mapping[str, str],
) -> VisitCategory:
    """Classify one visit against the first-seen index.

    A visit is the identity's first occurrence when the earliest timestamp
    recorded for the key falls on the same day as ``occurred_at``.
    """

    seen = first_seen.get(identity_key) if identity_key else None
    if seen is None:
        if visit_type is VisitType.REVISIT:
            return VisitCategory.REVISIT
        return VisitCategory.UNKNOWN

    is_first_occurrence = seen[:10] >= occurred_at[:10]

    if visit_type is VisitType.REVISIT:
        return VisitCategory.REVISIT
    if visit_type is VisitType.FIRST:
        return VisitCategory.PURE_FIRST if is_first_occurrence else VisitCategory.RETURNING_FIRST
    return VisitCategory.PURE_FIRST if is_first_occurrence else VisitCategory.REVISIT


def classify_karte_records(
    records: Sequence[KarteRecord],
    first_seen: Optional[Mapping[str, str]] = None,
) -> List[ClassifiedVisit[KarteRecord]]:
    """Classify karte visits in chronological order.

    When no index is passed one is built from the records themselves.
    """

    if first_seen is None:
        first_seen = build_first_seen_index(build_identity_events(karte=records))
    ordered = sorted(records, key=lambda r: r.date_iso)
    return [
        ClassifiedVisit(r, classify_visit(r.visit_type, r.identity_key, karte_occurred_at(r), first_seen))
        for r in ordered
    ]


def classify_reservations(
    records: Sequence[ReservationRecord],
    first_seen: Optional[Mapping[str, str]] = None,
) -> List[ClassifiedVisit[ReservationRecord]]:
    if first_seen is None:
        first_seen = build_first_seen_index(build_identity_events(reservations=records))
    return [
        ClassifiedVisit(r, classify_visit(r.type, r.identity_key, reservation_occurred_at(r), first_seen))
        for r in records
    ]


# ---- Monthly rollup ----


def calculate_age(birth_date_iso: str, visit_date_iso: str) -> Optional[int]:
    """Age in whole years on the visit date (None for malformed dates)."""

    try:
        birth_year, birth_month, birth_day = (int(p) for p in birth_date_iso[:10].split("-"))
        visit_year, visit_month, visit_day = (int(p) for p in visit_date_iso[:10].split("-"))
    except ValueError:
        return None
    age = visit_year - birth_year
    if (visit_month, visit_day) < (birth_month, birth_day):
        age -= 1
    return age


def aggregate_karte_monthly(
    records: Sequence[KarteRecord],
    first_seen: Optional[Mapping[str, str]] = None,
) -> List[Dict[str, object]]:
    """Per-month category counts and average patient age (1 decimal)."""

    buckets: Dict[str, Dict[str, float]] = {}
    for visit in classify_karte_records(records, first_seen):
        record = visit.record
        bucket = buckets.setdefault(
            record.month_key,
            {"total": 0, **{c.value: 0 for c in VisitCategory}, "age_sum": 0, "age_count": 0},
        )
        bucket["total"] += 1
        bucket[visit.category.value] += 1

        if record.birth_date_iso:
            age = calculate_age(record.birth_date_iso, record.date_iso)
            if age is not None and 0 <= age < MAX_VALID_AGE:
                bucket["age_sum"] += age
                bucket["age_count"] += 1

    stats = []
    for month in sorted(buckets):
        bucket = buckets[month]
        stats.append(
            {
                "month": month,
                "total": int(bucket["total"]),
                **{c.value: int(bucket[c.value]) for c in VisitCategory},
                "average_age": round(bucket["age_sum"] / bucket["age_count"], 1) if bucket["age_count"] else None,
            }
        )
    return stats

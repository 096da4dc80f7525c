"""Patient identity resolution across reservation and karte sources.

Reservation logs, karte exports and diagnosis exports identify patients
with different (and often missing) keys. This module derives one stable
string key per patient record so the sources can be joined within an
analysis session, and tracks the first time each identity was observed.

Key cascade (strongest first, never falls back to a weaker key once a
stronger one resolves):

1. ``pid:<patient id>``           source-assigned patient ID
2. ``pn:<patient number>``        digits only, leading zeros removed
3. ``nb:<name>|<birth date>``     normalized name + ISO birth date
4. ``n:<name>``                   normalized name only
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Union

from clinic_locale import normalize_name_for_matching


_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class PatientIdentityInput:
    """Whatever identifying fields a source row carries."""

    patient_id: Optional[str] = None
    patient_number: Optional[Union[str, int, float]] = None
    patient_name: Optional[str] = None
    patient_name_normalized: Optional[str] = None
    birth_date_iso: Optional[str] = None


@dataclass(frozen=True)
class PatientEvent:
    identity_key: Optional[str]
    occurred_at: Optional[str]


def _is_iso_like(value: Optional[str]) -> bool:
    return isinstance(value, str) and len(value) >= 10


def normalize_patient_number(value: Optional[Union[str, int, float]]) -> Optional[str]:
    """Erase formatting differences in patient numbers ("00123", 123 -> "123")."""

    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return str(int(value)) if float(value).is_integer() else str(value)

    digits = _NON_DIGITS.sub("", str(value))
    if not digits:
        return None
    return str(int(digits))


def create_patient_identity_key(identity: PatientIdentityInput) -> Optional[str]:
    """Return the strongest available identity key, or None."""

    if identity.patient_id and identity.patient_id.strip():
        return f"pid:{identity.patient_id.strip()}"

    number_key = normalize_patient_number(identity.patient_number)
    if number_key:
        return f"pn:{number_key}"

    name = identity.patient_name_normalized or normalize_name_for_matching(identity.patient_name)

    if name and _is_iso_like(identity.birth_date_iso):
        return f"nb:{name}|{identity.birth_date_iso}"

    if name:
        return f"n:{name}"

    return None


def build_first_seen_index(events: Iterable[PatientEvent]) -> Dict[str, str]:
    """Map each identity key to the earliest timestamp seen for it.

    Events without a key or without an ISO-like timestamp are ignored.
    Timestamps are compared as strings; callers must emit them with the
    same offset so lexicographic order is chronological order.
    """

    index: Dict[str, str] = {}
    for event in events:
        if event is None or not event.identity_key or not _is_iso_like(event.occurred_at):
            continue
        previous = index.get(event.identity_key)
        if previous is None or event.occurred_at < previous:
            index[event.identity_key] = event.occurred_at
    return index

"""In-memory dashboard data store.

Holds the latest parsed records for every CSV kind together with a
per-kind upload status. An upload replaces the kind's records wholesale
(last write wins); there is no incremental merge. The store can be dumped
to a JSON-safe snapshot and restored from it, which is how the backend and
the Streamlit app persist data between restarts.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Type, Union

import pandas as pd

from clinic_csv_parsers import (
    CsvKind,
    DepartmentGroup,
    DiagnosisRecord,
    KarteRecord,
    ListingRecord,
    ParseError,
    ParseResult,
    ParseWarning,
    ReservationRecord,
    SurveyRecord,
    VisitType,
    parse_csv,
)
from clinic_diagnosis import DiagnosisCategory, DiagnosisDepartment
from clinic_locale import as_tokyo


logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class _RecordCodec:
    record_type: Type
    timestamps: Tuple[str, ...] = ()
    enums: Dict[str, Type] = field(default_factory=dict)
    tuples: Tuple[str, ...] = ()


_LISTING_CODEC = _RecordCodec(ListingRecord, timestamps=("date",), tuples=("hourly_cv",))
_SURVEY_CODEC = _RecordCodec(SurveyRecord, timestamps=("date",))

RECORD_CODECS: Dict[CsvKind, _RecordCodec] = {
    CsvKind.RESERVATIONS: _RecordCodec(
        ReservationRecord,
        timestamps=("date_time", "received_at"),
        enums={"department_group": DepartmentGroup, "type": VisitType},
    ),
    CsvKind.LISTING_INTERNAL: _LISTING_CODEC,
    CsvKind.LISTING_GASTROSCOPY: _LISTING_CODEC,
    CsvKind.LISTING_COLONOSCOPY: _LISTING_CODEC,
    CsvKind.SURVEY_OUTPATIENT: _SURVEY_CODEC,
    CsvKind.SURVEY_ENDOSCOPY: _SURVEY_CODEC,
    CsvKind.KARTE: _RecordCodec(KarteRecord, enums={"visit_type": VisitType}),
    CsvKind.DIAGNOSIS: _RecordCodec(
        DiagnosisRecord,
        enums={"department": DiagnosisDepartment, "category": DiagnosisCategory},
    ),
}


def record_to_json(kind: CsvKind, record: Any) -> Dict[str, Any]:
    codec = RECORD_CODECS[kind]
    payload: Dict[str, Any] = {}
    for f in fields(record):
        value = getattr(record, f.name)
        if f.name in codec.timestamps:
            value = None if value is None else as_tokyo(value).isoformat()
        elif f.name in codec.enums:
            value = value.value
        elif f.name in codec.tuples:
            value = list(value)
        elif isinstance(value, dict):
            value = dict(value)
        payload[f.name] = value
    return payload


def record_from_json(kind: CsvKind, payload: Dict[str, Any]) -> Any:
    codec = RECORD_CODECS[kind]
    values: Dict[str, Any] = {}
    for f in fields(codec.record_type):
        if f.name not in payload:
            continue
        value = payload[f.name]
        if f.name in codec.timestamps:
            value = None if value is None else as_tokyo(pd.Timestamp(value))
        elif f.name in codec.enums:
            value = codec.enums[f.name](value)
        elif f.name in codec.tuples:
            value = tuple(value)
        values[f.name] = value
    return codec.record_type(**values)


# ------------------------------- Status -------------------------------


@dataclass(frozen=True)
class CsvStatus:
    row_count: int
    error_count: int
    errors: Tuple[ParseError, ...] = ()
    warnings: Tuple[ParseWarning, ...] = ()
    updated_at: Optional[str] = None

    @classmethod
    def from_result(cls, result: ParseResult, updated_at: Optional[str] = None) -> "CsvStatus":
        return cls(
            row_count=len(result.data),
            error_count=len(result.errors),
            errors=tuple(result.errors),
            warnings=tuple(result.warnings),
            updated_at=updated_at or datetime.now(timezone.utc).isoformat(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_count": self.row_count,
            "error_count": self.error_count,
            "errors": [asdict(e) for e in self.errors],
            "warnings": [asdict(w) for w in self.warnings],
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CsvStatus":
        return cls(
            row_count=int(payload.get("row_count", 0)),
            error_count=int(payload.get("error_count", 0)),
            errors=tuple(ParseError(**e) for e in payload.get("errors", [])),
            warnings=tuple(ParseWarning(**w) for w in payload.get("warnings", [])),
            updated_at=payload.get("updated_at"),
        )


# ------------------------------- Store --------------------------------


class DashboardDataStore:
    """Latest records and upload status per CSV kind.

    Replacements happen under a lock so concurrent uploads of the same kind
    never interleave; the last completed upload wins.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[CsvKind, Tuple[Any, ...]] = {}
        self._status: Dict[CsvKind, CsvStatus] = {}

    def ingest(self, kind: Union[CsvKind, str], csv_text: str) -> CsvStatus:
        """Parse ``csv_text`` as ``kind`` and replace the stored records."""

        kind = CsvKind(kind)
        result = parse_csv(kind, csv_text)
        return self.replace(kind, result)

    def replace(self, kind: Union[CsvKind, str], result: ParseResult) -> CsvStatus:
        kind = CsvKind(kind)
        status = CsvStatus.from_result(result)
        with self._lock:
            self._records[kind] = tuple(result.data)
            self._status[kind] = status
        logger.info(
            "dataset_replaced",
            extra={
                "kind": kind.value,
                "rows": status.row_count,
                "errors": status.error_count,
                "warnings": len(status.warnings),
            },
        )
        return status

    def clear(self, kind: Optional[Union[CsvKind, str]] = None) -> None:
        with self._lock:
            if kind is None:
                self._records.clear()
                self._status.clear()
            else:
                self._records.pop(CsvKind(kind), None)
                self._status.pop(CsvKind(kind), None)

    def records(self, kind: Union[CsvKind, str]) -> Tuple[Any, ...]:
        with self._lock:
            return self._records.get(CsvKind(kind), ())

    def status(self, kind: Union[CsvKind, str]) -> Optional[CsvStatus]:
        with self._lock:
            return self._status.get(CsvKind(kind))

    def statuses(self) -> Dict[CsvKind, CsvStatus]:
        with self._lock:
            return dict(self._status)

    def kinds(self) -> List[CsvKind]:
        with self._lock:
            return [k for k in CsvKind if k in self._records]

    # ---- Snapshots ----

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe dump: timestamps as ISO strings, enums as their values."""

        with self._lock:
            records = dict(self._records)
            status = dict(self._status)

        datasets = {}
        for kind in CsvKind:
            if kind not in records:
                continue
            datasets[kind.value] = {
                "records": [record_to_json(kind, r) for r in records[kind]],
                "status": status[kind].to_dict() if kind in status else None,
            }
        return {"version": SNAPSHOT_VERSION, "datasets": datasets}

    @classmethod
    def from_snapshot(cls, payload: Optional[Dict[str, Any]]) -> "DashboardDataStore":
        store = cls()
        if not payload:
            return store
        for name, dataset in (payload.get("datasets") or {}).items():
            try:
                kind = CsvKind(name)
            except ValueError:
                logger.warning("snapshot_unknown_kind", extra={"kind": name})
                continue
            records = tuple(record_from_json(kind, r) for r in dataset.get("records", []))
            status_payload = dataset.get("status")
            status = (
                CsvStatus.from_dict(status_payload)
                if status_payload
                else CsvStatus(row_count=len(records), error_count=0)
            )
            store._records[kind] = records
            store._status[kind] = status
        return store

"""Pipeline controller for the clinic analytics dashboard.

This module defines the "run" entrypoints used by the CLI, the Streamlit
app and the backend service:

- `discover_csv_files` maps CSV exports in a directory to CSV kinds,
- `load_directory` parses them into a `DashboardDataStore`,
- `build_dashboard_payload` runs every aggregation over a store and
  returns one JSON-friendly structure.

No work happens at import time.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from clinic_aggregation import (
    DEFAULT_CORRELATION_GROUPS,
    DEFAULT_DISTRIBUTED_LAG_HOURS,
    DEFAULT_LAG_HOURS,
    aggregate_listing_hourly,
    aggregate_reservations_daily,
    aggregate_reservations_hourly,
    aggregate_reservations_monthly,
    aggregate_reservations_weekday,
    build_correlation_series,
    build_incrementality_dataset,
    compute_department_stats,
    compute_distributed_lag_effect,
    compute_lag_correlations,
    extract_top_departments,
    filter_reservations_by_month,
    summarize_listing_monthly,
    summarize_survey_monthly,
)
from clinic_csv_parsers import CsvKind
from clinic_data_store import DashboardDataStore
from clinic_diagnosis import (
    aggregate_diagnosis_category_monthly,
    aggregate_diagnosis_monthly,
    calculate_previous_range,
    filter_diagnosis_by_month_range,
    summarize_diagnosis_by_disease,
)
from clinic_leadtime import LeadtimeConfig, aggregate_leadtime_metrics
from clinic_locale import extract_month_options, to_month_key
from clinic_patient_identity import build_first_seen_index
from clinic_visit_classification import (
    VisitCategory,
    aggregate_karte_monthly,
    build_identity_events,
    classify_reservations,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineConfig:
    base_dir: Path = Path(".")
    month: Optional[str] = None
    top_departments: int = 6
    top_diseases: int = 20
    leadtime: LeadtimeConfig = LeadtimeConfig()
    lag_hours: int = DEFAULT_LAG_HOURS
    distributed_lag_hours: int = DEFAULT_DISTRIBUTED_LAG_HOURS
    diagnosis_start_month: Optional[str] = None
    diagnosis_end_month: Optional[str] = None


# ------------------------------ Discovery -----------------------------

# Preferred file names; auto-detection only runs for kinds missing here.
CANONICAL_FILENAMES: Dict[CsvKind, str] = {
    CsvKind.RESERVATIONS: "reservations.csv",
    CsvKind.LISTING_INTERNAL: "listing_internal.csv",
    CsvKind.LISTING_GASTROSCOPY: "listing_gastroscopy.csv",
    CsvKind.LISTING_COLONOSCOPY: "listing_colonoscopy.csv",
    CsvKind.SURVEY_OUTPATIENT: "survey_outpatient.csv",
    CsvKind.SURVEY_ENDOSCOPY: "survey_endoscopy.csv",
    CsvKind.KARTE: "karte.csv",
    CsvKind.DIAGNOSIS: "diagnosis.csv",
}

# Every keyword group must hit. Ordered so specific kinds claim files first.
KIND_KEYWORDS: Sequence[Tuple[CsvKind, Sequence[Sequence[str]]]] = (
    (CsvKind.LISTING_GASTROSCOPY, (("listing", "リスティング"), ("gastro", "胃カメラ", "胃"))),
    (CsvKind.LISTING_COLONOSCOPY, (("listing", "リスティング"), ("colono", "大腸"))),
    (CsvKind.LISTING_INTERNAL, (("listing", "リスティング"),)),
    (CsvKind.SURVEY_ENDOSCOPY, (("survey", "アンケート"), ("endoscopy", "内視鏡"))),
    (CsvKind.SURVEY_OUTPATIENT, (("survey", "アンケート"),)),
    (CsvKind.DIAGNOSIS, (("diagnosis", "傷病", "病名"),)),
    (CsvKind.KARTE, (("karte", "カルテ"),)),
    (CsvKind.RESERVATIONS, (("reservation", "予約"),)),
)


def _list_csv_files(base_dir: Path) -> List[Path]:
    return sorted(p for p in base_dir.iterdir() if p.is_file() and p.suffix.lower() == ".csv")


def _choose_by_keywords(files: Sequence[Path], groups: Sequence[Sequence[str]]) -> Optional[Path]:
    """Choose the CSV whose name matches every keyword group.

    Files score one point per matched keyword; ties go to the
    alphabetically last name, the same way repeated exports sort.
    """

    scored: List[Tuple[int, Path]] = []
    for p in files:
        name = p.name.lower()
        hits = [sum(1 for kw in group if kw.lower() in name) for group in groups]
        if all(hits):
            scored.append((sum(hits), p))
    if not scored:
        return None
    scored.sort(key=lambda t: (t[0], t[1].name), reverse=True)
    return scored[0][1]


def discover_csv_files(base_dir: Path) -> Dict[CsvKind, Path]:
    """Map CSV kinds to files in ``base_dir`` (canonical names first)."""

    base_dir = Path(base_dir)
    if not base_dir.is_dir():
        raise FileNotFoundError(f"CSV directory does not exist: {base_dir}")

    found: Dict[CsvKind, Path] = {}
    for kind, filename in CANONICAL_FILENAMES.items():
        candidate = base_dir / filename
        if candidate.exists():
            found[kind] = candidate

    remaining = [p for p in _list_csv_files(base_dir) if p not in found.values()]
    for kind, groups in KIND_KEYWORDS:
        if kind in found:
            continue
        chosen = _choose_by_keywords(remaining, groups)
        if chosen is not None:
            found[kind] = chosen
            remaining.remove(chosen)

    return {kind: found[kind] for kind in CsvKind if kind in found}


def _read_text(path: Path) -> str:
    # utf-8-sig drops the BOM Excel adds to CSV exports.
    return path.read_text(encoding="utf-8-sig")


def load_directory(base_dir: Path, store: Optional[DashboardDataStore] = None) -> Tuple[DashboardDataStore, Dict[CsvKind, Path]]:
    store = store or DashboardDataStore()
    files = discover_csv_files(base_dir)
    if not files:
        logger.warning("no_csv_files_found", extra={"base_dir": str(base_dir)})
    for kind, path in files.items():
        status = store.ingest(kind, _read_text(path))
        logger.info(
            "csv_loaded",
            extra={"kind": kind.value, "path": str(path), "rows": status.row_count, "errors": status.error_count},
        )
    return store, files


# ------------------------------ Payload -------------------------------


def _to_builtin(obj: Any) -> Any:
    """Convert numpy/pandas objects, enums and dataclasses into JSON-friendly builtins."""

    if obj is None:
        return None

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, (str, int, float, bool)):
        return obj

    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating,)):
        return float(obj)
    if isinstance(obj, (np.bool_,)):
        return bool(obj)

    if isinstance(obj, (pd.Timestamp,)):
        return obj.isoformat()

    if isinstance(obj, (Path,)):
        return str(obj)

    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: _to_builtin(getattr(obj, f.name)) for f in dataclasses.fields(obj)}

    if isinstance(obj, (list, tuple)):
        return [_to_builtin(x) for x in obj]

    if isinstance(obj, Mapping):
        return {(k.value if isinstance(k, Enum) else str(k)): _to_builtin(v) for k, v in obj.items()}

    return str(obj)


def _month_filter(records: Sequence[Any], month: Optional[str], attr: str) -> List[Any]:
    if not month:
        return list(records)
    return [r for r in records if to_month_key(getattr(r, attr)) == month]


def _incrementality_section(
    store: DashboardDataStore,
    reservations: Sequence[Any],
    first_seen: Mapping[str, str],
    cfg: PipelineConfig,
) -> Dict[str, Any]:
    datasets = build_incrementality_dataset(
        reservations,
        first_seen,
        listing_internal=_month_filter(store.records(CsvKind.LISTING_INTERNAL), cfg.month, "date"),
        listing_gastroscopy=_month_filter(store.records(CsvKind.LISTING_GASTROSCOPY), cfg.month, "date"),
        listing_colonoscopy=_month_filter(store.records(CsvKind.LISTING_COLONOSCOPY), cfg.month, "date"),
        survey_outpatient=_month_filter(store.records(CsvKind.SURVEY_OUTPATIENT), cfg.month, "date"),
        survey_endoscopy=_month_filter(store.records(CsvKind.SURVEY_ENDOSCOPY), cfg.month, "date"),
    )
    return {
        segment: {
            "hourly": dataset.hourly,
            "daily": dataset.daily,
            "totals": dataset.totals,
            "lag_correlations": compute_lag_correlations(dataset.hourly, cfg.lag_hours),
            "distributed_lag": compute_distributed_lag_effect(dataset.hourly, cfg.distributed_lag_hours),
        }
        for segment, dataset in datasets.items()
    }


def _diagnosis_summary(records: Sequence[Any], top_diseases: int) -> Dict[str, Any]:
    return {
        "total": len(records),
        "monthly": aggregate_diagnosis_monthly(records),
        "category_monthly": aggregate_diagnosis_category_monthly(records),
        "diseases": summarize_diagnosis_by_disease(records)[:top_diseases],
    }


def _diagnosis_section(records: Sequence[Any], cfg: PipelineConfig) -> Dict[str, Any]:
    start, end = cfg.diagnosis_start_month, cfg.diagnosis_end_month
    section = _diagnosis_summary(filter_diagnosis_by_month_range(records, start, end), cfg.top_diseases)
    section["range"] = {"start": start, "end": end}

    previous_range = calculate_previous_range(start, end) if start and end else None
    section["previous"] = None
    if previous_range is not None:
        previous = filter_diagnosis_by_month_range(records, previous_range["start"], previous_range["end"])
        section["previous"] = {"range": previous_range, **_diagnosis_summary(previous, cfg.top_diseases)}
    return section


def build_dashboard_payload(store: DashboardDataStore, config: Optional[PipelineConfig] = None) -> Dict[str, Any]:
    """Run every aggregation over ``store``.

    Parameters
    ----------
    store:
        Data store holding the latest parsed records.
    config:
        Optional `PipelineConfig`; ``month`` (``yyyy-MM``) restricts the
        reservation, listing, survey and incrementality sections to one
        month. ``diagnosis_start_month`` and ``diagnosis_end_month`` bound
        the diagnosis section; when both are set it also carries the
        equally long range right before them.

    Returns
    -------
    Dict[str, Any]
        JSON-friendly structure with one key per dashboard section plus the
        per-kind upload ``status``. Sections whose CSV was never loaded are
        present but empty.
    """

    cfg = config or PipelineConfig()
    month = cfg.month

    all_reservations = store.records(CsvKind.RESERVATIONS)
    reservations = filter_reservations_by_month(all_reservations, month)
    karte = store.records(CsvKind.KARTE)

    # One first-seen index per run, across every source carrying identities.
    first_seen = build_first_seen_index(build_identity_events(karte=karte, reservations=all_reservations))

    department_stats = compute_department_stats(reservations)
    classification: Dict[str, int] = {c.value: 0 for c in VisitCategory}
    for visit in classify_reservations(reservations, first_seen):
        classification[visit.category.value] += visit.record.count

    listing_internal = _month_filter(store.records(CsvKind.LISTING_INTERNAL), month, "date")

    listing = {
        kind.value: {
            "monthly": summarize_listing_monthly(records),
            "hourly": aggregate_listing_hourly(records),
        }
        for kind in (CsvKind.LISTING_INTERNAL, CsvKind.LISTING_GASTROSCOPY, CsvKind.LISTING_COLONOSCOPY)
        for records in [_month_filter(store.records(kind), month, "date")]
    }

    survey = {
        kind.value: summarize_survey_monthly(_month_filter(store.records(kind), month, "date"))
        for kind in (CsvKind.SURVEY_OUTPATIENT, CsvKind.SURVEY_ENDOSCOPY)
    }

    incrementality = _incrementality_section(store, reservations, first_seen, cfg)
    diagnosis = _diagnosis_section(store.records(CsvKind.DIAGNOSIS), cfg)
    leadtime = aggregate_leadtime_metrics(reservations, cfg.leadtime)

    payload: Dict[str, Any] = {
        "month": month,
        "months": extract_month_options(r.date_time for r in all_reservations),
        "status": {kind.value: status.to_dict() for kind, status in store.statuses().items()},
        "reservations": {
            "monthly": aggregate_reservations_monthly(reservations),
            "daily": aggregate_reservations_daily(reservations),
            "weekday": aggregate_reservations_weekday(reservations),
            "hourly": aggregate_reservations_hourly(reservations),
            "departments": department_stats,
            "top_departments": extract_top_departments(department_stats, limit=cfg.top_departments),
            "classification": classification,
        },
        "leadtime": leadtime,
        "listing": listing,
        "correlation": build_correlation_series(listing_internal, reservations, DEFAULT_CORRELATION_GROUPS),
        "survey": survey,
        "karte": {"monthly": aggregate_karte_monthly(karte, first_seen)},
        "incrementality": incrementality,
        "diagnosis": diagnosis,
    }
    return _to_builtin(payload)


def run_pipeline(config: PipelineConfig | Mapping[str, Any]) -> Dict[str, Any]:
    """Load every CSV in ``config.base_dir`` and build the dashboard payload.

    ``config`` is either a `PipelineConfig` or a dict-like object with
    ``base_dir`` and optionally ``month``, ``diagnosis_start_month`` and
    ``diagnosis_end_month``.
    """

    if isinstance(config, PipelineConfig):
        cfg = config
    else:
        base_dir_raw = config.get("base_dir", ".")
        cfg = PipelineConfig(
            base_dir=Path(base_dir_raw).resolve() if base_dir_raw is not None else Path(".").resolve(),
            month=config.get("month"),
            diagnosis_start_month=config.get("diagnosis_start_month"),
            diagnosis_end_month=config.get("diagnosis_end_month"),
        )

    store, files = load_directory(cfg.base_dir)
    payload = build_dashboard_payload(store, cfg)
    payload["inputs"] = {
        "base_dir": str(cfg.base_dir),
        "files": {kind.value: str(path) for kind, path in files.items()},
    }
    return payload

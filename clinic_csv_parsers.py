"""CSV row parsers for clinic exports.

Every CSV kind is handled by the same validated-schema runner:

1. Read the CSV text with pandas, keeping every cell as a string.
2. Resolve header aliases to canonical column names.
3. Validate required columns. A file missing any of them produces a single
   row-0 error and no rows are parsed (fail-fast at the schema level).
4. Parse each data row independently (fail-soft at the row level). A row
   parser returns ``Ok(record, warnings)``, a ``RowError`` (the row is
   dropped and the error recorded) or ``None`` (the row is skipped, e.g.
   data before the analysis cutoff). A line with more fields than the
   header becomes a row error of its own; lines with fewer fields are
   padded with blanks.

Row numbers count the physical lines after the header, blank lines
included, so row N is line N + 1 of the file unless an earlier quoted
cell spans several lines. Row 0 refers to the header or the file as a
whole. Malformed input never raises.
"""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import (
    Callable,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

import pandas as pd

from clinic_diagnosis import (
    DiagnosisCategory,
    DiagnosisDepartment,
    categorize_disease_name,
    map_diagnosis_department,
)
from clinic_locale import (
    is_on_or_after_start,
    normalize_name_for_matching,
    parse_jst_date,
    parse_number,
    parse_percent,
    to_date_key,
    to_month_key,
)
from clinic_patient_identity import (
    PatientIdentityInput,
    create_patient_identity_key,
    normalize_patient_number,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


class CsvKind(str, Enum):
    RESERVATIONS = "reservations"
    LISTING_INTERNAL = "listingInternal"
    LISTING_GASTROSCOPY = "listingGastroscopy"
    LISTING_COLONOSCOPY = "listingColonoscopy"
    SURVEY_OUTPATIENT = "surveyOutpatient"
    SURVEY_ENDOSCOPY = "surveyEndoscopy"
    KARTE = "karte"
    DIAGNOSIS = "diagnosis"


class VisitType(str, Enum):
    FIRST = "初診"
    REVISIT = "再診"
    UNKNOWN = "不明"


class DepartmentGroup(str, Enum):
    INTERNAL_SURGICAL = "内科外科外来"
    INTERNAL = "内科外来"
    FEVER = "発熱外来"
    GASTROSCOPY = "胃カメラ"
    COLONOSCOPY = "大腸カメラ"
    ENDOSCOPY_DOCK = "内視鏡ドック"
    HEALTH_CHECK_A = "人間ドックA"
    HEALTH_CHECK_B = "人間ドックB"
    ONLINE = "オンライン診療"
    OTHER = "その他"


# Order matters: "内科外科外来" must be tested before "内科外来".
DEPARTMENT_GROUP_TABLE: Tuple[Tuple[DepartmentGroup, Tuple[str, ...]], ...] = (
    (DepartmentGroup.INTERNAL_SURGICAL, ("内科外科外来", "内科・外科外来")),
    (DepartmentGroup.INTERNAL, ("内科外来",)),
    (DepartmentGroup.FEVER, ("発熱外来", "発熱", "風邪症状")),
    (DepartmentGroup.GASTROSCOPY, ("胃カメラ", "胃内視鏡")),
    (DepartmentGroup.COLONOSCOPY, ("大腸カメラ", "大腸内視鏡")),
    (DepartmentGroup.ENDOSCOPY_DOCK, ("内視鏡ドック",)),
    (DepartmentGroup.HEALTH_CHECK_A, ("人間ドックA", "人間ドック（A")),
    (DepartmentGroup.HEALTH_CHECK_B, ("人間ドックB", "人間ドック（B")),
    (DepartmentGroup.ONLINE, ("オンライン診療",)),
)


def map_department_group(department: Optional[str]) -> DepartmentGroup:
    """Map a raw department name to its group; unmatched names are その他."""

    if not department:
        return DepartmentGroup.OTHER
    normalized = "".join(department.split()).lower()
    for group, keywords in DEPARTMENT_GROUP_TABLE:
        if any("".join(k.split()).lower() in normalized for k in keywords):
            return group
    return DepartmentGroup.OTHER


def resolve_visit_type(value: Optional[str]) -> VisitType:
    """Reservation exports only distinguish 再診 from everything else."""

    if value and "再" in value:
        return VisitType.REVISIT
    return VisitType.FIRST


# ------------------------------ Results -------------------------------


@dataclass(frozen=True)
class ParseError:
    row: int
    message: str
    field: Optional[str] = None


@dataclass(frozen=True)
class ParseWarning:
    row: int
    message: str
    field: Optional[str] = None


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    data: Tuple[T, ...] = ()
    errors: Tuple[ParseError, ...] = ()
    warnings: Tuple[ParseWarning, ...] = ()


@dataclass(frozen=True)
class Ok(Generic[T]):
    record: T
    warnings: Tuple[ParseWarning, ...] = ()


@dataclass(frozen=True)
class RowError:
    field: Optional[str]
    message: str


RowOutcome = Union[Ok, RowError, None]
RowParser = Callable[[Mapping[str, str], int, Sequence[str]], RowOutcome]


# ------------------------------ Records -------------------------------


@dataclass(frozen=True)
class ReservationRecord:
    date_time: pd.Timestamp
    department: str
    department_group: DepartmentGroup
    type: VisitType
    count: int
    is_same_day: bool
    received_at: Optional[pd.Timestamp] = None
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    identity_key: Optional[str] = None


@dataclass(frozen=True)
class ListingRecord:
    date: pd.Timestamp
    amount: Optional[float]
    cv: Optional[float]
    cvr: Optional[float]
    cpa: Optional[float]
    hourly_cv: Tuple[Optional[float], ...]


@dataclass(frozen=True)
class SurveyRecord:
    date: pd.Timestamp
    channels: Mapping[str, Optional[float]]
    fever_google: Optional[float] = None


@dataclass(frozen=True)
class KarteRecord:
    date_iso: str
    month_key: str
    visit_type: VisitType
    patient_number: Optional[int] = None
    birth_date_iso: Optional[str] = None
    department: Optional[str] = None
    points: Optional[float] = None
    patient_name_normalized: Optional[str] = None
    identity_key: Optional[str] = None


@dataclass(frozen=True)
class DiagnosisRecord:
    id: str
    disease_name: str
    start_date: str
    month_key: str
    department: DiagnosisDepartment
    category: DiagnosisCategory
    patient_number: Optional[str] = None
    patient_name_normalized: Optional[str] = None
    birth_date_iso: Optional[str] = None


# --------------------------- Schema runner ----------------------------


@dataclass(frozen=True)
class CsvSchema(Generic[T]):
    """Declarative description of one CSV kind.

    Attributes
    ----------
    label:
        Human-readable name used in error messages.
    required:
        Canonical column names that must be present.
    parse_row:
        ``(row, row_number, headers) -> Ok | RowError | None``.
    aliases:
        Canonical name -> alternative header spellings.
    check_headers:
        Extra schema-level check returning an error message or None.
    post_check:
        Produces file-level warnings from the parsed records.
    dedupe_key:
        When set, records sharing a key are collapsed (last one wins).
    """

    label: str
    required: Tuple[str, ...]
    parse_row: RowParser
    aliases: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    check_headers: Optional[Callable[[Sequence[str]], Optional[str]]] = None
    post_check: Optional[Callable[[Sequence[T], Sequence[str]], List[ParseWarning]]] = None
    dedupe_key: Optional[Callable[[T], str]] = None

    def __post_init__(self) -> None:
        if not self.label or not self.label.strip():
            raise ValueError("CsvSchema requires a non-empty label")
        if not self.required:
            raise ValueError(f"CsvSchema '{self.label}' declares no required columns")
        if not callable(self.parse_row):
            raise TypeError(f"CsvSchema '{self.label}' parse_row must be callable")


def validate_required_columns(headers: Sequence[str], required: Sequence[str], label: str) -> List[ParseError]:
    missing = [column for column in required if column not in headers]
    if not missing:
        return []
    return [ParseError(row=0, message=f"{label}の必須列が不足しています: {', '.join(missing)}")]


_BAD_LINE_MARKER = "\x00bad-line\x00"


def _mark_bad_line(fields: List[str]) -> List[str]:
    return [_BAD_LINE_MARKER + ",".join(fields)]


def _read_csv_text(csv_text: str) -> pd.DataFrame:
    # The header is read as an ordinary row so that pandas never treats a
    # long first line as an implicit index and every long line reaches
    # _mark_bad_line.
    text = csv_text.lstrip("\ufeff")
    frame = pd.read_csv(
        io.StringIO(text),
        header=None,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
        engine="python",
        on_bad_lines=_mark_bad_line,
    )
    return frame.fillna("")


def _is_blank(values: Sequence[object]) -> bool:
    return not any(str(v).strip() for v in values)


def _alias_renames(headers: Sequence[str], aliases: Mapping[str, Tuple[str, ...]]) -> Dict[str, str]:
    renames: Dict[str, str] = {}
    for canonical, alternatives in aliases.items():
        if canonical in headers:
            continue
        for alternative in alternatives:
            if alternative in headers:
                renames[alternative] = canonical
                break
    return renames


def parse_with_schema(schema: CsvSchema[T], csv_text: str) -> ParseResult[T]:
    """Run ``schema`` over ``csv_text`` and collect records, errors and warnings."""

    try:
        frame = _read_csv_text(csv_text or "")
    except pd.errors.EmptyDataError:
        return ParseResult(errors=(ParseError(row=0, message=f"{schema.label}CSVに行がありません"),))
    except pd.errors.ParserError as exc:
        return ParseResult(
            errors=(ParseError(row=0, message=f"{schema.label}のCSV解析時にエラーが発生しました: {exc}"),)
        )

    lines = frame.values.tolist()
    while lines and _is_blank(lines[0]):
        lines.pop(0)
    if not lines:
        return ParseResult(errors=(ParseError(row=0, message=f"{schema.label}CSVに行がありません"),))

    raw_headers = [str(v).strip() for v in lines[0]]
    renames = _alias_renames(raw_headers, schema.aliases)
    headers = [renames.get(h, h) for h in raw_headers]

    header_errors = validate_required_columns(headers, schema.required, schema.label)
    if header_errors:
        return ParseResult(errors=tuple(header_errors))

    if schema.check_headers is not None:
        message = schema.check_headers(headers)
        if message:
            return ParseResult(errors=(ParseError(row=0, message=message),))

    data: List[T] = []
    errors: List[ParseError] = []
    warnings: List[ParseWarning] = []

    for row_number, values in enumerate(lines[1:], start=1):
        if _is_blank(values):
            continue
        first = str(values[0])
        if first.startswith(_BAD_LINE_MARKER):
            errors.append(
                ParseError(
                    row=row_number,
                    message=f"列数がヘッダー({len(headers)}列)より多い行です: {first[len(_BAD_LINE_MARKER):]}",
                )
            )
            continue
        row = dict(zip(headers, (str(v) for v in values)))
        outcome = schema.parse_row(row, row_number, headers)
        if outcome is None:
            continue
        if isinstance(outcome, RowError):
            errors.append(ParseError(row=row_number, message=outcome.message, field=outcome.field))
            continue
        data.append(outcome.record)
        warnings.extend(outcome.warnings)

    if schema.dedupe_key is not None:
        deduped: Dict[str, T] = {}
        for record in data:
            deduped[schema.dedupe_key(record)] = record
        data = list(deduped.values())

    if schema.post_check is not None:
        warnings.extend(schema.post_check(data, headers))

    logger.debug(
        "csv_parsed",
        extra={"label": schema.label, "rows": len(data), "errors": len(errors), "warnings": len(warnings)},
    )
    return ParseResult(data=tuple(data), errors=tuple(errors), warnings=tuple(warnings))


# ------------------------------ Helpers -------------------------------

PATIENT_NAME_COLUMNS = ("患者氏名", "患者名", "氏名")


def _cell(row: Mapping[str, str], column: str) -> str:
    value = row.get(column)
    return "" if value is None else str(value).strip()


def _first_filled(row: Mapping[str, str], columns: Sequence[str]) -> Optional[Tuple[str, str]]:
    for column in columns:
        value = _cell(row, column)
        if value:
            return column, value
    return None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ---------------------------- Reservations ----------------------------

RESERVATION_REQUIRED = ("予約日時", "診療科", "初再診")
RESERVATION_ALIASES = {
    "診療科": ("診療科コード",),
    "初再診": ("初診/再診", "初再診区分"),
}
RESERVATION_COUNT_COLUMNS = ("件数", "予約数", "当日数値", "集計数")
RESERVATION_SAME_DAY_COLUMNS = ("当日予約", "当日")
_TRUTHY = {"true", "yes", "1"}


def _parse_reservation_row(row: Mapping[str, str], row_number: int, headers: Sequence[str]) -> RowOutcome:
    raw_date = _cell(row, "予約日時")
    date_time = parse_jst_date(raw_date)
    if date_time is None:
        return RowError("予約日時", f'予約日時を解釈できませんでした: "{raw_date}"')
    if not is_on_or_after_start(date_time):
        return None

    count = 1
    found = _first_filled(row, RESERVATION_COUNT_COLUMNS)
    if found is not None:
        column, raw_count = found
        value = parse_number(raw_count)
        if value is None:
            return RowError(column, f'件数を解釈できませんでした: "{raw_count}"')
        count = max(1, _round_half_up(value))

    warnings: List[ParseWarning] = []
    received_at = None
    raw_received = _cell(row, "受信時刻JST")
    if raw_received:
        received_at = parse_jst_date(raw_received)
        if received_at is None:
            warnings.append(
                ParseWarning(row_number, f'受信時刻JSTを解釈できませんでした: "{raw_received}"', "受信時刻JST")
            )

    same_day_column = next((c for c in RESERVATION_SAME_DAY_COLUMNS if c in headers), None)
    is_same_day = same_day_column is not None and _cell(row, same_day_column).lower() in _TRUTHY

    department = _cell(row, "診療科")
    patient_id = _cell(row, "患者ID") or None
    name_cell = _first_filled(row, PATIENT_NAME_COLUMNS)
    patient_name = name_cell[1] if name_cell else None

    record = ReservationRecord(
        date_time=date_time,
        department=department,
        department_group=map_department_group(department),
        type=resolve_visit_type(_cell(row, "初再診")),
        count=count,
        is_same_day=is_same_day,
        received_at=received_at,
        patient_id=patient_id,
        patient_name=patient_name,
        identity_key=create_patient_identity_key(
            PatientIdentityInput(patient_id=patient_id, patient_name=patient_name)
        ),
    )
    return Ok(record, tuple(warnings))


RESERVATION_SCHEMA: CsvSchema[ReservationRecord] = CsvSchema(
    label="予約CSV",
    required=RESERVATION_REQUIRED,
    parse_row=_parse_reservation_row,
    aliases=RESERVATION_ALIASES,
)


# ------------------------------ Listings ------------------------------

LISTING_REQUIRED = ("日付", "金額", "CV", "CVR", "CPA")
HOUR_COLUMNS = tuple(f"{hour}時" for hour in range(24))
CPA_TOLERANCE = 0.01


def _check_hour_columns(label: str, headers: Sequence[str]) -> Optional[str]:
    missing = [c for c in HOUR_COLUMNS if c not in headers]
    if missing:
        return f"{label}CSVに0時〜23時の列が存在しません。テンプレートをご確認ください。(不足: {', '.join(missing)})"
    return None


def _parse_listing_row(label: str, row: Mapping[str, str], row_number: int, headers: Sequence[str]) -> RowOutcome:
    raw_date = _cell(row, "日付")
    date = parse_jst_date(raw_date)
    if date is None:
        return RowError("日付", f'{label}CSVの日付を読み取れませんでした: "{raw_date}"')
    if not is_on_or_after_start(date):
        return None

    amount = parse_number(_cell(row, "金額"))
    cv = parse_number(_cell(row, "CV"))
    cvr = parse_percent(_cell(row, "CVR"))
    cpa = parse_number(_cell(row, "CPA"))

    warnings: List[ParseWarning] = []
    hourly: List[Optional[float]] = []
    for column in HOUR_COLUMNS:
        raw = _cell(row, column)
        value = parse_number(raw)
        if value is None and raw:
            warnings.append(
                ParseWarning(row_number, f'{label}CSVの時間帯別CVを解釈できませんでした: "{raw}"', column)
            )
        hourly.append(value)

    if cpa is not None and amount is not None and cv:
        calculated = amount / cv
        if abs(cpa - calculated) > abs(cpa) * CPA_TOLERANCE:
            warnings.append(
                ParseWarning(row_number, f"{label}CSVのCPA({cpa:g})が金額/CV({calculated:.1f})と一致しません", "CPA")
            )

    record = ListingRecord(date=date, amount=amount, cv=cv, cvr=cvr, cpa=cpa, hourly_cv=tuple(hourly))
    return Ok(record, tuple(warnings))


def _listing_schema(label: str) -> CsvSchema[ListingRecord]:
    return CsvSchema(
        label=label,
        required=LISTING_REQUIRED,
        parse_row=partial(_parse_listing_row, label),
        check_headers=partial(_check_hour_columns, label),
    )


LISTING_INTERNAL_SCHEMA = _listing_schema("内科リスティング")
LISTING_GASTROSCOPY_SCHEMA = _listing_schema("胃カメラリスティング")
LISTING_COLONOSCOPY_SCHEMA = _listing_schema("大腸カメラリスティング")


# ------------------------------ Surveys -------------------------------

FEVER_GOOGLE_CHANNEL = "発熱外来(Google)"
_TEMPLATE_MARKERS = {"", "OFF"}


def survey_channels(headers: Sequence[str]) -> List[str]:
    return [h for h in headers if h and h != "日付"]


def _parse_survey_row(label: str, row: Mapping[str, str], row_number: int, headers: Sequence[str]) -> RowOutcome:
    raw_date = _cell(row, "日付")
    # Exports ship a template row (blank or OFF) right under the header.
    if row_number == 1 and raw_date.upper() in _TEMPLATE_MARKERS:
        return None

    date = parse_jst_date(raw_date)
    if date is None:
        return RowError("日付", f'{label}CSVの日付を読み取れませんでした: "{raw_date}"')
    if not is_on_or_after_start(date):
        return None

    warnings: List[ParseWarning] = []
    channels: Dict[str, Optional[float]] = {}
    for channel in survey_channels(headers):
        raw = _cell(row, channel)
        value = parse_number(raw)
        if value is None and raw:
            warnings.append(ParseWarning(row_number, f'{label}CSVの値を解釈できませんでした: "{raw}"', channel))
        channels[channel] = value

    record = SurveyRecord(date=date, channels=channels, fever_google=channels.get(FEVER_GOOGLE_CHANNEL))
    return Ok(record, tuple(warnings))


def _empty_channel_warnings(label: str, records: Sequence[SurveyRecord], headers: Sequence[str]) -> List[ParseWarning]:
    if not records:
        return []
    return [
        ParseWarning(0, f"{label}CSVの列「{channel}」に値がありません", channel)
        for channel in survey_channels(headers)
        if all(r.channels.get(channel) is None for r in records)
    ]


def _survey_schema(label: str) -> CsvSchema[SurveyRecord]:
    return CsvSchema(
        label=label,
        required=("日付",),
        parse_row=partial(_parse_survey_row, label),
        post_check=partial(_empty_channel_warnings, label),
    )


SURVEY_OUTPATIENT_SCHEMA = _survey_schema("アンケート(外来)")
SURVEY_ENDOSCOPY_SCHEMA = _survey_schema("アンケート(内視鏡)")


# ------------------------------- Karte --------------------------------

KARTE_REQUIRED = ("日付", "初診・再診")
KARTE_ALIASES = {"初診・再診": ("初再診", "初診/再診")}


def _parse_karte_visit_type(value: str) -> VisitType:
    if value == VisitType.FIRST.value:
        return VisitType.FIRST
    if value == VisitType.REVISIT.value:
        return VisitType.REVISIT
    return VisitType.UNKNOWN


def _parse_birth_date(row: Mapping[str, str], row_number: int, warnings: List[ParseWarning]) -> Optional[str]:
    raw = _cell(row, "患者生年月日")
    if not raw:
        return None
    parsed = parse_jst_date(raw)
    if parsed is None:
        warnings.append(ParseWarning(row_number, f'患者生年月日を解釈できませんでした: "{raw}"', "患者生年月日"))
        return None
    return to_date_key(parsed)


def _parse_karte_row(row: Mapping[str, str], row_number: int, headers: Sequence[str]) -> RowOutcome:
    raw_date = _cell(row, "日付")
    visit_date = parse_jst_date(raw_date)
    if visit_date is None:
        return RowError("日付", f'カルテCSVの日付を読み取れませんでした: "{raw_date}"')

    warnings: List[ParseWarning] = []
    birth_date_iso = _parse_birth_date(row, row_number, warnings)

    number_key = normalize_patient_number(_cell(row, "患者番号"))
    patient_number = int(number_key) if number_key is not None else None
    name_cell = _first_filled(row, PATIENT_NAME_COLUMNS)
    name_normalized = normalize_name_for_matching(name_cell[1]) if name_cell else None

    record = KarteRecord(
        date_iso=to_date_key(visit_date),
        month_key=to_month_key(visit_date),
        visit_type=_parse_karte_visit_type(_cell(row, "初診・再診")),
        patient_number=patient_number,
        birth_date_iso=birth_date_iso,
        department=_cell(row, "診療科") or None,
        points=parse_number(_cell(row, "点数")),
        patient_name_normalized=name_normalized,
        identity_key=create_patient_identity_key(
            PatientIdentityInput(
                patient_number=patient_number,
                patient_name_normalized=name_normalized,
                birth_date_iso=birth_date_iso,
            )
        ),
    )
    return Ok(record, tuple(warnings))


KARTE_SCHEMA: CsvSchema[KarteRecord] = CsvSchema(
    label="カルテCSV",
    required=KARTE_REQUIRED,
    parse_row=_parse_karte_row,
    aliases=KARTE_ALIASES,
)


# ----------------------------- Diagnosis ------------------------------

DIAGNOSIS_REQUIRED = ("主病", "診療科", "開始日", "傷病名")


def _parse_japanese_date(value: str):
    return parse_jst_date(value.replace("年", "/").replace("月", "/").replace("日", ""))


def _parse_diagnosis_row(row: Mapping[str, str], row_number: int, headers: Sequence[str]) -> RowOutcome:
    if _cell(row, "主病") != "主病":
        return None

    department = map_diagnosis_department(_cell(row, "診療科"))
    if department is None:
        return None

    raw_start = _cell(row, "開始日")
    start = _parse_japanese_date(raw_start)
    if start is None:
        return RowError("開始日", f'開始日を解釈できませんでした: "{raw_start}"')

    disease_name = _cell(row, "傷病名")
    if not disease_name:
        return RowError("傷病名", "傷病名が空です")

    warnings: List[ParseWarning] = []
    raw_birth = _cell(row, "患者生年月日")
    birth_date_iso = None
    if raw_birth:
        birth = _parse_japanese_date(raw_birth)
        if birth is None:
            warnings.append(
                ParseWarning(row_number, f'患者生年月日を解釈できませんでした: "{raw_birth}"', "患者生年月日")
            )
        else:
            birth_date_iso = to_date_key(birth)

    start_date = to_date_key(start)
    month_key = start_date[:7]
    patient_number = normalize_patient_number(_cell(row, "患者番号"))
    name_cell = _first_filled(row, PATIENT_NAME_COLUMNS + ("患者",))

    record = DiagnosisRecord(
        id="|".join([department.value, month_key, disease_name, start_date, patient_number or ""]),
        disease_name=disease_name,
        start_date=start_date,
        month_key=month_key,
        department=department,
        category=categorize_disease_name(disease_name),
        patient_number=patient_number,
        patient_name_normalized=normalize_name_for_matching(name_cell[1]) if name_cell else None,
        birth_date_iso=birth_date_iso,
    )
    return Ok(record, tuple(warnings))


DIAGNOSIS_SCHEMA: CsvSchema[DiagnosisRecord] = CsvSchema(
    label="傷病名CSV",
    required=DIAGNOSIS_REQUIRED,
    parse_row=_parse_diagnosis_row,
    dedupe_key=lambda record: record.id,
)


# ------------------------------ Entrypoints ---------------------------


def parse_reservations(csv_text: str) -> ParseResult[ReservationRecord]:
    return parse_with_schema(RESERVATION_SCHEMA, csv_text)


def parse_listing_internal(csv_text: str) -> ParseResult[ListingRecord]:
    return parse_with_schema(LISTING_INTERNAL_SCHEMA, csv_text)


def parse_listing_gastroscopy(csv_text: str) -> ParseResult[ListingRecord]:
    return parse_with_schema(LISTING_GASTROSCOPY_SCHEMA, csv_text)


def parse_listing_colonoscopy(csv_text: str) -> ParseResult[ListingRecord]:
    return parse_with_schema(LISTING_COLONOSCOPY_SCHEMA, csv_text)


def parse_survey_outpatient(csv_text: str) -> ParseResult[SurveyRecord]:
    return parse_with_schema(SURVEY_OUTPATIENT_SCHEMA, csv_text)


def parse_survey_endoscopy(csv_text: str) -> ParseResult[SurveyRecord]:
    return parse_with_schema(SURVEY_ENDOSCOPY_SCHEMA, csv_text)


def parse_karte(csv_text: str) -> ParseResult[KarteRecord]:
    return parse_with_schema(KARTE_SCHEMA, csv_text)


def parse_diagnosis(csv_text: str) -> ParseResult[DiagnosisRecord]:
    return parse_with_schema(DIAGNOSIS_SCHEMA, csv_text)


PARSERS: Dict[CsvKind, Callable[[str], ParseResult]] = {
    CsvKind.RESERVATIONS: parse_reservations,
    CsvKind.LISTING_INTERNAL: parse_listing_internal,
    CsvKind.LISTING_GASTROSCOPY: parse_listing_gastroscopy,
    CsvKind.LISTING_COLONOSCOPY: parse_listing_colonoscopy,
    CsvKind.SURVEY_OUTPATIENT: parse_survey_outpatient,
    CsvKind.SURVEY_ENDOSCOPY: parse_survey_endoscopy,
    CsvKind.KARTE: parse_karte,
    CsvKind.DIAGNOSIS: parse_diagnosis,
}


def parse_csv(kind: Union[CsvKind, str], csv_text: str) -> ParseResult:
    """Parse ``csv_text`` with the parser registered for ``kind``."""

    return PARSERS[CsvKind(kind)](csv_text)

from __future__ import annotations

import pandas as pd
import pytest

from clinic_aggregation import aggregate_reservations_monthly
from clinic_csv_parsers import (
    CsvKind,
    CsvSchema,
    DepartmentGroup,
    Ok,
    RowError,
    VisitType,
    map_department_group,
    parse_csv,
    parse_diagnosis,
    parse_karte,
    parse_listing_internal,
    parse_reservations,
    parse_survey_outpatient,
    parse_with_schema,
    validate_required_columns,
)
from clinic_diagnosis import DiagnosisCategory, DiagnosisDepartment
from clinic_locale import TOKYO_TZ
from conftest import HOUR_HEADERS, hourly_cells, listing_csv


# ---- Generic runner ----


def test_validate_required_columns_names_missing_columns():
    errors = validate_required_columns(["a", "b"], ["a", "c", "d"], "テスト")
    assert len(errors) == 1
    assert errors[0].row == 0
    assert "c" in errors[0].message and "d" in errors[0].message
    assert validate_required_columns(["a"], ["a"], "テスト") == []


def test_schema_construction_rejects_invalid_configuration():
    with pytest.raises(ValueError):
        CsvSchema(label="", required=("a",), parse_row=lambda row, n, h: None)
    with pytest.raises(ValueError):
        CsvSchema(label="x", required=(), parse_row=lambda row, n, h: None)


def test_runner_collects_ok_errors_and_skips():
    def parse_row(row, row_number, headers):
        if row["v"] == "skip":
            return None
        if row["v"] == "bad":
            return RowError("v", "bad value")
        return Ok(row["v"])

    schema = CsvSchema(label="テスト", required=("v",), parse_row=parse_row)
    result = parse_with_schema(schema, "v\nok1\nbad\nskip\nok2\n")

    assert result.data == ("ok1", "ok2")
    assert [(e.row, e.field) for e in result.errors] == [(2, "v")]
    assert result.warnings == ()


def test_runner_reports_empty_input_at_row_zero():
    result = parse_reservations("")
    assert result.data == ()
    assert len(result.errors) == 1
    assert result.errors[0].row == 0


def test_runner_row_numbers_count_blank_lines():
    def parse_row(row, row_number, headers):
        if row["v"] == "bad":
            return RowError("v", "bad value")
        return Ok(row["v"])

    schema = CsvSchema(label="テスト", required=("v",), parse_row=parse_row)
    result = parse_with_schema(schema, "v\nok1\n\nbad\n")

    assert result.data == ("ok1",)
    assert [e.row for e in result.errors] == [3]


def test_long_line_in_the_middle_is_a_row_error():
    csv_text = (
        "予約日時,診療科,初再診\n"
        "2025-10-05 09:00,内科外来,初診\n"
        "2025-10-06 09:00,内科,外科外来,初診\n"
        "2025-10-07 09:00,発熱外来,再診\n"
    )
    result = parse_reservations(csv_text)

    assert [e.row for e in result.errors] == [2]
    assert result.errors[0].field is None
    assert [(r.date_time.day, r.department, r.type) for r in result.data] == [
        (5, "内科外来", VisitType.FIRST),
        (7, "発熱外来", VisitType.REVISIT),
    ]


def test_long_first_line_does_not_shift_columns():
    csv_text = (
        "予約日時,診療科,初再診\n"
        "2025-10-06 09:00,内科,外科外来,初診\n"
        "2025-10-07 09:00,発熱外来,再診\n"
    )
    result = parse_reservations(csv_text)

    assert [e.row for e in result.errors] == [1]
    assert len(result.data) == 1
    record = result.data[0]
    assert record.date_time == pd.Timestamp("2025-10-07 09:00", tz=TOKYO_TZ)
    assert record.department_group is DepartmentGroup.FEVER
    assert record.type is VisitType.REVISIT


def test_short_line_is_padded_with_blanks():
    csv_text = "予約日時,診療科,初再診,件数\n2025-10-05 09:00,内科外来,再診\n"
    result = parse_reservations(csv_text)

    assert result.errors == ()
    assert result.data[0].count == 1
    assert result.data[0].type is VisitType.REVISIT


# ---- Reservations ----


def test_reservations_end_to_end_three_rows(reservations_csv):
    result = parse_reservations(reservations_csv)

    assert len(result.data) == 2
    assert len(result.errors) == 1
    assert result.errors[0].row == 2
    assert result.errors[0].field == "予約日時"

    monthly = aggregate_reservations_monthly(result.data)
    assert monthly == [
        {"month": "2025-10", "初診": 1, "再診": 0, "total": 1},
        {"month": "2025-11", "初診": 0, "再診": 1, "total": 1},
    ]


def test_reservations_missing_required_column_stops_parsing():
    result = parse_reservations("予約日時,診療科\n2025-10-05 09:00,内科外来\n")
    assert result.data == ()
    assert len(result.errors) == 1
    assert result.errors[0].row == 0
    assert "初再診" in result.errors[0].message


def test_reservations_aliases_and_optional_columns():
    csv_text = (
        "予約日時,診療科コード,初診/再診,件数,当日予約,受信時刻JST,患者ID\n"
        "2025/10/3 14:00,内科・外科外来,再診,2.6,TRUE,2025/10/1 8:00,P01\n"
    )
    result = parse_reservations(csv_text)

    assert result.errors == ()
    record = result.data[0]
    assert record.date_time == pd.Timestamp("2025-10-03 14:00", tz=TOKYO_TZ)
    assert record.department_group is DepartmentGroup.INTERNAL_SURGICAL
    assert record.type is VisitType.REVISIT
    assert record.count == 3
    assert record.is_same_day is True
    assert record.received_at == pd.Timestamp("2025-10-01 08:00", tz=TOKYO_TZ)
    assert record.identity_key == "pid:P01"


def test_reservations_count_rules():
    csv_text = (
        "予約日時,診療科,初再診,件数\n"
        "2025-10-03 09:00,内科外来,初診,0\n"
        "2025-10-03 10:00,内科外来,初診,\n"
        "2025-10-03 11:00,内科外来,初診,abc\n"
    )
    result = parse_reservations(csv_text)

    assert [r.count for r in result.data] == [1, 1]
    assert [(e.row, e.field) for e in result.errors] == [(3, "件数")]


def test_reservations_cutoff_is_inclusive_and_silent():
    csv_text = (
        "予約日時,診療科,初再診\n"
        "2025-10-01 23:59,内科外来,初診\n"
        "2025-10-02 00:00,内科外来,初診\n"
    )
    result = parse_reservations(csv_text)
    assert len(result.data) == 1
    assert result.errors == () and result.warnings == ()


def test_reservations_unparseable_booking_time_is_a_warning():
    csv_text = "予約日時,診療科,初再診,受信時刻JST\n2025-10-03 09:00,内科外来,初診,yesterday\n"
    result = parse_reservations(csv_text)
    assert len(result.data) == 1
    assert result.data[0].received_at is None
    assert [(w.row, w.field) for w in result.warnings] == [(1, "受信時刻JST")]


def test_reservations_tolerate_bom_and_patient_name_identity():
    csv_text = "\ufeff予約日時,診療科,初再診,患者名\n2025-10-03 09:00,発熱外来,初診,ヤマダ タロウ\n"
    result = parse_reservations(csv_text)
    assert result.errors == ()
    assert result.data[0].identity_key == "n:やまだたろう"
    assert result.data[0].type is VisitType.FIRST


@pytest.mark.parametrize(
    "department, group",
    [
        ("内科外来", DepartmentGroup.INTERNAL),
        ("内科・外科外来", DepartmentGroup.INTERNAL_SURGICAL),
        ("発熱外来（風邪症状）", DepartmentGroup.FEVER),
        ("胃内視鏡検査", DepartmentGroup.GASTROSCOPY),
        ("大腸 カメラ", DepartmentGroup.COLONOSCOPY),
        ("内視鏡ドック", DepartmentGroup.ENDOSCOPY_DOCK),
        ("人間ドック（A）", DepartmentGroup.HEALTH_CHECK_A),
        ("人間ドックB", DepartmentGroup.HEALTH_CHECK_B),
        ("オンライン診療", DepartmentGroup.ONLINE),
        ("皮膚科", DepartmentGroup.OTHER),
        ("", DepartmentGroup.OTHER),
        (None, DepartmentGroup.OTHER),
    ],
)
def test_department_grouping_is_total(department, group):
    assert map_department_group(department) is group


# ---- Listings ----


def test_listing_row_parsing():
    result = parse_listing_internal(
        listing_csv('2025-10-03,"10,000",4,2%,2500,' + hourly_cells(h9="3"))
    )
    assert result.errors == () and result.warnings == ()
    record = result.data[0]
    assert record.amount == 10000.0
    assert record.cv == 4.0
    assert record.cvr == pytest.approx(0.02)
    assert record.cpa == 2500.0
    assert len(record.hourly_cv) == 24
    assert record.hourly_cv[9] == 3.0
    assert record.hourly_cv[0] is None


def test_listing_soft_issues_are_warnings():
    result = parse_listing_internal(
        listing_csv(
            "2025-10-03,10000,4,2%,3000," + hourly_cells(h5="x"),
            "bad,10000,4,2%,2500," + hourly_cells(),
        )
    )
    assert len(result.data) == 1
    assert sorted(w.field for w in result.warnings) == ["5時", "CPA"]
    assert [(e.row, e.field) for e in result.errors] == [(2, "日付")]


def test_listing_requires_hour_columns():
    result = parse_listing_internal(
        listing_csv("2025-10-03,1,1,1,1", headers=["日付", "金額", "CV", "CVR", "CPA"])
    )
    assert result.data == ()
    assert len(result.errors) == 1
    assert result.errors[0].row == 0
    assert "0時〜23時" in result.errors[0].message


def test_listing_missing_values_stay_none():
    result = parse_listing_internal(listing_csv("2025-10-03,,,,," + hourly_cells()))
    record = result.data[0]
    assert (record.amount, record.cv, record.cvr, record.cpa) == (None, None, None, None)
    assert result.warnings == ()


# ---- Surveys ----


def test_survey_parsing_with_template_row_and_empty_channel():
    csv_text = (
        "日付,Google,Yahoo,発熱外来(Google),空\n"
        "OFF,,,,\n"
        "2025-10-03,3,1,2,\n"
        "2025-10-04,x,2,1,\n"
    )
    result = parse_survey_outpatient(csv_text)

    assert len(result.data) == 2
    assert result.errors == ()
    first = result.data[0]
    assert first.channels["Google"] == 3.0
    assert first.channels["空"] is None
    assert first.fever_google == 2.0
    assert result.data[1].channels["Google"] is None

    assert sorted((w.row, w.field) for w in result.warnings) == [(0, "空"), (3, "Google")]


def test_survey_only_first_row_can_be_a_template():
    csv_text = "日付,Google\n2025-10-03,1\nOFF,2\n"
    result = parse_survey_outpatient(csv_text)
    assert len(result.data) == 1
    assert [(e.row, e.field) for e in result.errors] == [(2, "日付")]


# ---- Karte ----


def test_karte_parsing(karte_csv):
    result = parse_karte(karte_csv)

    assert result.errors == ()
    assert len(result.data) == 3

    first, second, third = result.data
    # No analysis cutoff for karte history.
    assert first.date_iso == "2025-09-15"
    assert first.month_key == "2025-09"
    assert first.visit_type is VisitType.FIRST
    assert first.patient_number == 123
    assert first.birth_date_iso == "1980-01-02"
    assert first.patient_name_normalized == "やまだたろう"
    assert first.points == 250.0
    assert first.identity_key == "pn:123"

    assert second.visit_type is VisitType.REVISIT
    assert second.identity_key == "pn:123"

    assert third.visit_type is VisitType.UNKNOWN
    assert third.identity_key == "n:山田花子"
    assert [(w.row, w.field) for w in result.warnings] == [(3, "患者生年月日")]


# ---- Diagnosis ----


def test_diagnosis_parsing(diagnosis_csv):
    result = parse_diagnosis(diagnosis_csv)

    assert [(e.row, e.field) for e in result.errors] == [(7, "開始日")]
    assert [(r.department, r.category) for r in result.data] == [
        (DiagnosisDepartment.GENERAL, DiagnosisCategory.LIFESTYLE),
        (DiagnosisDepartment.FEVER, DiagnosisCategory.SURGICAL),
        (DiagnosisDepartment.ONLINE_INSURED, DiagnosisCategory.DERMATOLOGY),
    ]
    first = result.data[0]
    assert first.start_date == "2025-10-05"
    assert first.month_key == "2025-10"
    assert first.patient_number == "1"
    assert first.birth_date_iso == "1970-01-01"
    assert first.id == "総合診療|2025-10|高血圧症|2025-10-05|1"


# ---- Dispatch ----


def test_parse_csv_dispatches_by_kind(reservations_csv):
    assert len(parse_csv("reservations", reservations_csv).data) == 2
    assert len(parse_csv(CsvKind.RESERVATIONS, reservations_csv).data) == 2
    with pytest.raises(ValueError):
        parse_csv("unknown", reservations_csv)


def test_listing_headers_helper_matches_hour_columns():
    assert HOUR_HEADERS[0] == "0時" and HOUR_HEADERS[-1] == "23時"

from __future__ import annotations

import json

import pytest

import main as cli
from clinic_csv_parsers import CsvKind
from pipeline import PipelineConfig, build_dashboard_payload, discover_csv_files, load_directory, run_pipeline


@pytest.fixture
def export_dir(tmp_path, reservations_csv, karte_csv, diagnosis_csv):
    (tmp_path / "reservations.csv").write_text(reservations_csv, encoding="utf-8")
    # Excel-style BOM on an auto-detected file name
    (tmp_path / "カルテ_202510.csv").write_text("\ufeff" + karte_csv, encoding="utf-8")
    (tmp_path / "傷病名一覧.csv").write_text(diagnosis_csv, encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")
    return tmp_path


def test_discover_maps_canonical_and_keyword_names(tmp_path):
    for name in [
        "reservations.csv",
        "リスティング_胃カメラ.csv",
        "リスティング_大腸.csv",
        "listing_2025.csv",
        "アンケート_内視鏡.csv",
        "アンケート_外来.csv",
        "random.csv",
    ]:
        (tmp_path / name).write_text("x\n", encoding="utf-8")

    found = discover_csv_files(tmp_path)
    assert {kind: path.name for kind, path in found.items()} == {
        CsvKind.RESERVATIONS: "reservations.csv",
        CsvKind.LISTING_INTERNAL: "listing_2025.csv",
        CsvKind.LISTING_GASTROSCOPY: "リスティング_胃カメラ.csv",
        CsvKind.LISTING_COLONOSCOPY: "リスティング_大腸.csv",
        CsvKind.SURVEY_OUTPATIENT: "アンケート_外来.csv",
        CsvKind.SURVEY_ENDOSCOPY: "アンケート_内視鏡.csv",
    }


def test_discover_rejects_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        discover_csv_files(tmp_path / "missing")


def test_load_directory_parses_every_file(export_dir):
    store, files = load_directory(export_dir)
    assert set(files) == {CsvKind.RESERVATIONS, CsvKind.KARTE, CsvKind.DIAGNOSIS}
    assert store.status(CsvKind.KARTE).error_count == 0
    assert len(store.records(CsvKind.KARTE)) == 3
    assert len(store.records(CsvKind.DIAGNOSIS)) == 3


def test_payload_is_json_friendly(export_dir):
    payload = run_pipeline({"base_dir": str(export_dir)})
    json.dumps(payload, ensure_ascii=False)

    assert payload["months"] == ["2025-10", "2025-11"]
    assert payload["reservations"]["monthly"][0]["初診"] == 1
    assert payload["reservations"]["classification"]["unknown"] == 1
    assert payload["reservations"]["classification"]["revisit"] == 1
    assert len(payload["reservations"]["hourly"]) == 24
    assert payload["leadtime"]["summary"]["total"] == 0
    assert payload["listing"]["listingInternal"]["monthly"] == []
    assert [row["month"] for row in payload["karte"]["monthly"]] == ["2025-09", "2025-10"]
    assert {d["disease_name"] for d in payload["diagnosis"]["diseases"]} == {"高血圧症", "擦過傷", "アトピー性皮膚炎"}
    assert payload["status"]["reservations"]["error_count"] == 1
    assert set(payload["inputs"]["files"]) == {"reservations", "karte", "diagnosis"}


def test_month_filter_restricts_reservations(export_dir):
    store, _ = load_directory(export_dir)
    payload = build_dashboard_payload(store, PipelineConfig(base_dir=export_dir, month="2025-11"))

    assert payload["month"] == "2025-11"
    assert [row["month"] for row in payload["reservations"]["monthly"]] == ["2025-11"]
    # month options always cover every loaded month
    assert payload["months"] == ["2025-10", "2025-11"]


def test_cli_writes_json_and_charts(export_dir, tmp_path):
    output = tmp_path / "out" / "dashboard.json"
    output.parent.mkdir()
    plots = tmp_path / "plots"

    code = cli.main(
        ["--base-dir", str(export_dir), "--output-json", str(output), "--plots-dir", str(plots)]
    )

    assert code == 0
    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload["reservations"]["monthly"][1]["month"] == "2025-11"
    assert (plots / "reservations_monthly.png").exists()


def test_cli_reports_empty_directory(tmp_path):
    assert cli.main(["--base-dir", str(tmp_path)]) == 1


def test_payload_carries_incrementality_per_segment(export_dir):
    payload = run_pipeline({"base_dir": str(export_dir)})
    incrementality = payload["incrementality"]

    assert set(incrementality) == {"all", "general", "fever", "endoscopy"}
    overall = incrementality["all"]
    assert overall["totals"]["reservations"] == 2
    assert overall["totals"]["listing_cv"] == 0.0
    assert overall["lag_correlations"] == [{"lag": 0, "correlation": 0.0, "paired_samples": 2}]
    assert overall["distributed_lag"] is None
    assert [p["iso_hour"] for p in incrementality["fever"]["hourly"]] == ["2025-11-01T10:00:00+09:00"]


def test_diagnosis_range_compares_the_previous_period(export_dir):
    payload = run_pipeline(
        {"base_dir": str(export_dir), "diagnosis_start_month": "2025-11", "diagnosis_end_month": "2025-11"}
    )
    diagnosis = payload["diagnosis"]

    assert diagnosis["range"] == {"start": "2025-11", "end": "2025-11"}
    assert diagnosis["total"] == 1
    assert [row["month"] for row in diagnosis["monthly"]] == ["2025-11"]

    previous = diagnosis["previous"]
    assert previous["range"] == {"start": "2025-10", "end": "2025-10"}
    assert previous["total"] == 2
    assert {d["disease_name"] for d in previous["diseases"]} == {"高血圧症", "擦過傷"}


def test_open_diagnosis_range_has_no_previous_period(export_dir):
    store, _ = load_directory(export_dir)
    payload = build_dashboard_payload(store, PipelineConfig(base_dir=export_dir, diagnosis_start_month="2025-10"))

    assert payload["diagnosis"]["total"] == 3
    assert payload["diagnosis"]["previous"] is None

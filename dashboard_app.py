"""Streamlit dashboard for clinic CSV analytics.

This app reuses the pipeline modules to:
- Upload CSV exports per kind (reservations, listings, surveys, karte, diagnosis).
- Show per-file parse status (rows kept, errors, warnings).
- Visualize reservation, lead-time, listing, survey, karte and diagnosis summaries.

Run with:
    streamlit run dashboard_app.py
"""

from __future__ import annotations

from typing import Any, Dict, List

import pandas as pd
import streamlit as st

from clinic_charts import plot_diagnosis_monthly
from clinic_csv_parsers import CsvKind
from clinic_data_store import DashboardDataStore
from clinic_locale import extract_month_options
from pipeline import PipelineConfig, build_dashboard_payload


st.set_page_config(
    page_title="Clinic Analytics Dashboard",
    layout="wide",
)

KIND_LABELS: Dict[CsvKind, str] = {
    CsvKind.RESERVATIONS: "予約ログ",
    CsvKind.LISTING_INTERNAL: "リスティング(内科)",
    CsvKind.LISTING_GASTROSCOPY: "リスティング(胃カメラ)",
    CsvKind.LISTING_COLONOSCOPY: "リスティング(大腸カメラ)",
    CsvKind.SURVEY_OUTPATIENT: "アンケート(外来)",
    CsvKind.SURVEY_ENDOSCOPY: "アンケート(内視鏡)",
    CsvKind.KARTE: "カルテ",
    CsvKind.DIAGNOSIS: "傷病名",
}


def _get_store() -> DashboardDataStore:
    if "store" not in st.session_state:
        st.session_state["store"] = DashboardDataStore()
        st.session_state["ingested"] = {}
    return st.session_state["store"]


def handle_uploads(store: DashboardDataStore) -> None:
    """Ingest newly uploaded files; re-runs of the script skip files already parsed."""

    st.sidebar.header("CSV uploads")
    ingested: Dict[str, str] = st.session_state["ingested"]
    for kind, label in KIND_LABELS.items():
        uploaded = st.sidebar.file_uploader(label, type=["csv"], key=f"upload-{kind.value}")
        if uploaded is None:
            continue
        fingerprint = f"{uploaded.name}:{uploaded.size}"
        if ingested.get(kind.value) == fingerprint:
            continue
        text = uploaded.getvalue().decode("utf-8-sig", errors="replace")
        store.ingest(kind, text)
        ingested[kind.value] = fingerprint


def render_status(store: DashboardDataStore) -> None:
    statuses = store.statuses()
    if not statuses:
        st.info("Upload CSV files in the sidebar to populate the dashboard.")
        return

    rows = [
        {
            "kind": KIND_LABELS[kind],
            "rows": status.row_count,
            "errors": status.error_count,
            "warnings": len(status.warnings),
            "updated_at": status.updated_at,
        }
        for kind, status in statuses.items()
    ]
    st.dataframe(pd.DataFrame(rows), use_container_width=True)

    for kind, status in statuses.items():
        if not status.errors and not status.warnings:
            continue
        with st.expander(f"{KIND_LABELS[kind]}: {status.error_count} errors / {len(status.warnings)} warnings"):
            for error in status.errors:
                st.markdown(f"- :red[row {error.row}] {error.message}")
            for warning in status.warnings:
                st.markdown(f"- :orange[row {warning.row}] {warning.message}")


def _frame(rows: List[Dict[str, Any]], index: str) -> pd.DataFrame:
    if not rows:
        return pd.DataFrame()
    return pd.DataFrame(rows).set_index(index)


def render_dashboard(payload: Dict[str, Any]) -> None:
    reservations = payload["reservations"]
    classification = reservations["classification"]

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Reservations", sum(row["total"] for row in reservations["monthly"]))
    with col2:
        st.metric("New patients", classification.get("pureFirst", 0))
    with col3:
        st.metric("Returning first visits", classification.get("returningFirst", 0))
    with col4:
        rate = payload["leadtime"]["summary"]["same_day_rate"]
        st.metric("Same-day booking rate", f"{rate:.0%}")

    res_tab, lead_tab, listing_tab, survey_tab, incr_tab, karte_tab, diag_tab, json_tab = st.tabs(
        ["予約", "リードタイム", "リスティング", "アンケート", "相関", "カルテ", "傷病名", "Raw JSON"]
    )

    with res_tab:
        st.markdown("### Monthly")
        st.bar_chart(_frame(reservations["monthly"], "month")[["初診", "再診"]] if reservations["monthly"] else pd.DataFrame())
        st.markdown("### Daily")
        st.line_chart(_frame(reservations["daily"], "date"))
        left, right = st.columns(2)
        with left:
            st.markdown("### Weekday average")
            st.bar_chart(_frame(reservations["weekday"], "weekday")[["average"]])
        with right:
            st.markdown("### By hour")
            st.bar_chart(_frame(reservations["hourly"], "hour")[["total"]])
        st.markdown("### Top departments")
        st.write(", ".join(reservations["top_departments"]) or "-")

    with lead_tab:
        leadtime = payload["leadtime"]
        summary = leadtime["summary"]
        if summary["total"]:
            st.write(
                f"n={summary['total']}, average {summary['average_hours']:.1f}h, "
                f"median {summary['median_hours']:.1f}h, p90 {summary['p90_hours']:.1f}h"
            )
            st.bar_chart(pd.Series(summary["category_counts"], name="count"))
            st.dataframe(
                pd.DataFrame(
                    [{"department": d["department"], **d["summary"]} for d in leadtime["department_stats"]]
                ).drop(columns=["category_counts"]),
                use_container_width=True,
            )
        else:
            st.info("No reservations with a booking timestamp (受信時刻JST).")

    with listing_tab:
        for kind, section in payload["listing"].items():
            if not section["monthly"]:
                continue
            st.markdown(f"### {KIND_LABELS[CsvKind(kind)]}")
            st.dataframe(pd.DataFrame(section["monthly"]), use_container_width=True)
            st.bar_chart(pd.Series(section["hourly"], name="CV"))
        if payload["correlation"]:
            st.markdown("### Listing CV vs first-visit reservations")
            st.line_chart(_frame(payload["correlation"], "date")[["listing_cv", "reservation_count"]])

    with survey_tab:
        for kind, monthly in payload["survey"].items():
            if not monthly:
                continue
            st.markdown(f"### {KIND_LABELS[CsvKind(kind)]}")
            st.bar_chart(pd.DataFrame({row["month"]: row["channels"] for row in monthly}).T)

    with incr_tab:
        segment = st.selectbox("Segment", options=list(payload["incrementality"]))
        section = payload["incrementality"][segment]
        if not section["hourly"]:
            st.info("No hourly listing CV or reservations for this segment.")
        else:
            st.line_chart(_frame(section["daily"], "date")[["listing_cv", "true_first", "survey_google"]])
            st.markdown("### Strongest lags (hours)")
            st.dataframe(pd.DataFrame(section["lag_correlations"][:10]), use_container_width=True)
            effect = section["distributed_lag"]
            if effect is not None:
                st.metric("Total listing effect", f"{effect['total_effect']:.3f}", help=f"R² {effect['r_squared']:.2f}")

    with karte_tab:
        monthly = payload["karte"]["monthly"]
        if monthly:
            frame = _frame(monthly, "month")
            st.bar_chart(frame[["pureFirst", "returningFirst", "revisit"]])
            st.dataframe(frame, use_container_width=True)

    with diag_tab:
        diagnosis = payload["diagnosis"]
        if diagnosis["monthly"]:
            st.pyplot(plot_diagnosis_monthly(diagnosis["monthly"]))
            st.dataframe(pd.DataFrame(diagnosis["diseases"]), use_container_width=True)
        previous = diagnosis["previous"]
        if previous is not None:
            st.metric(
                f"Diagnoses {diagnosis['range']['start']}〜{diagnosis['range']['end']}",
                diagnosis["total"],
                delta=diagnosis["total"] - previous["total"],
            )

    with json_tab:
        st.json(payload)


def main() -> None:
    st.title("Clinic Analytics Dashboard")

    store = _get_store()
    handle_uploads(store)

    months = extract_month_options(r.date_time for r in store.records(CsvKind.RESERVATIONS))
    month = st.sidebar.selectbox("Month", options=["(all)"] + months)
    diagnosis_months = sorted({r.month_key for r in store.records(CsvKind.DIAGNOSIS)})
    diagnosis_start = st.sidebar.selectbox("Diagnosis from", options=["(all)"] + diagnosis_months)
    diagnosis_end = st.sidebar.selectbox("Diagnosis to", options=["(all)"] + diagnosis_months)
    config = PipelineConfig(
        month=None if month == "(all)" else month,
        diagnosis_start_month=None if diagnosis_start == "(all)" else diagnosis_start,
        diagnosis_end_month=None if diagnosis_end == "(all)" else diagnosis_end,
    )

    st.markdown("### Upload status")
    render_status(store)

    if store.kinds():
        st.markdown("---")
        render_dashboard(build_dashboard_payload(store, config))


if __name__ == "__main__":
    main()

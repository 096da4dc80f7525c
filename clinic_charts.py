"""Matplotlib charts for the dashboard payload.

The plotting backend is chosen explicitly through `init_chart_backend()`
instead of at import time, so importing this module never changes global
matplotlib state. Every plot function takes the JSON-friendly summaries
built by `pipeline.build_dashboard_payload` and returns a Figure; the
caller decides whether to save it (CLI) or hand it to Streamlit.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import matplotlib


logger = logging.getLogger(__name__)

_BACKEND_READY = False


def init_chart_backend(backend: str = "Agg") -> None:
    """Select the headless backend once; later calls are no-ops."""

    global _BACKEND_READY
    if _BACKEND_READY:
        return
    matplotlib.use(backend)
    _BACKEND_READY = True


def _pyplot():
    init_chart_backend()
    from matplotlib import pyplot as plt

    return plt


def plot_reservations_monthly(monthly: Sequence[Mapping[str, Any]], title: str = "Monthly reservations"):
    plt = _pyplot()
    fig, ax = plt.subplots(figsize=(10, 5))
    months = [row["month"] for row in monthly]
    first = [row.get("初診", 0) for row in monthly]
    revisit = [row.get("再診", 0) for row in monthly]

    ax.bar(months, first, label="First visit")
    ax.bar(months, revisit, bottom=first, label="Revisit")
    ax.set_xlabel("Month")
    ax.set_ylabel("Reservations")
    ax.set_title(title)
    ax.legend()
    ax.grid(True, axis="y", linestyle="--", alpha=0.5)
    fig.tight_layout()
    return fig


def plot_reservations_hourly(hourly: Sequence[Mapping[str, Any]], title: str = "Reservations by hour"):
    plt = _pyplot()
    fig, ax = plt.subplots(figsize=(10, 4))
    ax.bar([row["hour"] for row in hourly], [row["total"] for row in hourly])
    ax.set_xticks(range(0, 24, 2))
    ax.set_xlabel("Hour (JST)")
    ax.set_ylabel("Reservations")
    ax.set_title(title)
    ax.grid(True, axis="y", linestyle="--", alpha=0.5)
    fig.tight_layout()
    return fig


def plot_leadtime_categories(category_counts: Mapping[str, int], title: str = "Booking lead time"):
    plt = _pyplot()
    fig, ax = plt.subplots(figsize=(8, 4))
    labels = list(category_counts.keys())
    ax.barh(labels, [category_counts[k] for k in labels])
    ax.invert_yaxis()
    ax.set_xlabel("Reservations")
    ax.set_title(title)
    fig.tight_layout()
    return fig


def plot_correlation(series: Sequence[Mapping[str, Any]], title: str = "Listing CV vs first-visit reservations"):
    plt = _pyplot()
    fig, ax = plt.subplots(figsize=(10, 5))
    dates = [p["date"] for p in series]
    ax.plot(dates, [p["listing_cv"] for p in series], label="Listing CV", marker="o")
    ax.plot(dates, [p["reservation_count"] for p in series], label="First-visit reservations", marker="x")
    ax.set_xlabel("Date")
    ax.set_title(title)
    ax.legend()
    ax.grid(True, linestyle="--", alpha=0.5)
    ax.tick_params(axis="x", labelrotation=45)
    fig.tight_layout()
    return fig


def plot_diagnosis_monthly(monthly: Sequence[Mapping[str, Any]], title: str = "Main diagnoses by department"):
    plt = _pyplot()
    fig, ax = plt.subplots(figsize=(10, 5))
    months = [row["month"] for row in monthly]
    departments: List[str] = list(monthly[0]["totals"].keys()) if monthly else []
    for department in departments:
        ax.plot(months, [row["totals"].get(department, 0) for row in monthly], label=department, marker="o")
    ax.set_xlabel("Month")
    ax.set_ylabel("Patients")
    ax.set_title(title)
    if departments:
        ax.legend()
    ax.grid(True, linestyle="--", alpha=0.5)
    fig.tight_layout()
    return fig


def save_figure(fig, path: Path) -> Path:
    plt = _pyplot()
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        fig.savefig(path, format="png", dpi=100)
    finally:
        plt.close(fig)
    return path


def render_dashboard_charts(payload: Mapping[str, Any], out_dir: Path) -> Dict[str, Path]:
    """Write one PNG per available dashboard section; returns name -> path."""

    reservations = payload.get("reservations") or {}
    leadtime = payload.get("leadtime") or {}
    correlation: Optional[Sequence[Mapping[str, Any]]] = payload.get("correlation")
    diagnosis = payload.get("diagnosis") or {}

    figures = {}
    if reservations.get("monthly"):
        figures["reservations_monthly"] = plot_reservations_monthly(reservations["monthly"])
        figures["reservations_hourly"] = plot_reservations_hourly(reservations["hourly"])
    if leadtime.get("summary", {}).get("total"):
        figures["leadtime_categories"] = plot_leadtime_categories(leadtime["summary"]["category_counts"])
    if correlation:
        figures["correlation"] = plot_correlation(correlation)
    if diagnosis.get("monthly"):
        figures["diagnosis_monthly"] = plot_diagnosis_monthly(diagnosis["monthly"])

    written = {name: save_figure(fig, out_dir / f"{name}.png") for name, fig in figures.items()}
    logger.info("charts_written", extra={"count": len(written), "out_dir": str(out_dir)})
    return written

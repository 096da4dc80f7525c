from __future__ import annotations

"""Prometheus metrics for the clinic analytics backend.

This module defines process-wide metrics that can be scraped by a
Prometheus server via the /metrics endpoint.
"""

from prometheus_client import Counter, Gauge

from clinic_data_store import CsvStatus


CSV_UPLOADS_TOTAL = Counter(
    "clinic_csv_uploads_total",
    "Total number of CSV uploads parsed",
    ["kind", "status"],
)

CSV_ROWS_PARSED = Gauge(
    "clinic_csv_rows_parsed",
    "Rows kept by the most recent upload of each CSV kind",
    ["kind"],
)

CSV_ROW_ERRORS = Gauge(
    "clinic_csv_row_errors",
    "Errors reported by the most recent upload of each CSV kind",
    ["kind"],
)

CSV_ROW_WARNINGS = Gauge(
    "clinic_csv_row_warnings",
    "Warnings reported by the most recent upload of each CSV kind",
    ["kind"],
)

SHARE_UPLOADS_TOTAL = Counter(
    "clinic_share_uploads_total",
    "Total number of CSV payloads stored for sharing",
    ["type"],
)


def update_from_status(kind: str, status: CsvStatus) -> None:
    """Update Prometheus metrics from the status of one upload.

    An upload counts as ``failed`` when nothing could be kept (schema
    errors), ``partial`` when some rows were dropped and ``success``
    otherwise.
    """

    if status.row_count == 0 and status.error_count:
        outcome = "failed"
    elif status.error_count:
        outcome = "partial"
    else:
        outcome = "success"

    CSV_UPLOADS_TOTAL.labels(kind=kind, status=outcome).inc()
    CSV_ROWS_PARSED.labels(kind=kind).set(status.row_count)
    CSV_ROW_ERRORS.labels(kind=kind).set(status.error_count)
    CSV_ROW_WARNINGS.labels(kind=kind).set(len(status.warnings))


def record_share_upload(data_type: str) -> None:
    SHARE_UPLOADS_TOTAL.labels(type=data_type).inc()

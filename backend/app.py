from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from backend.config import get_settings
from backend.monitoring import record_share_upload, update_from_status
from backend.share_store import get_shared_data, save_shared_data
from backend.snapshot_store import load_store, save_store
from clinic_csv_parsers import CsvKind
from clinic_data_store import DashboardDataStore
from pipeline import PipelineConfig, build_dashboard_payload


class CsvBody(BaseModel):
    data: str = Field(..., description="Raw CSV text (UTF-8, BOM tolerated).")


class UploadBody(BaseModel):
    type: str = Field(..., min_length=1)
    category: Optional[str] = None
    data: Any = None


logger = logging.getLogger("clinic_backend")


settings = get_settings()

app = FastAPI(title=settings.app_name, version="0.1.0")

# CORS for the dashboard frontends + optional overrides via env
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_store: Optional[DashboardDataStore] = None
_store_lock = threading.Lock()


def get_store() -> DashboardDataStore:
    """Return the process-wide store, restoring the last snapshot on first use."""

    global _store
    with _store_lock:
        if _store is None:
            _store = load_store()
            logger.info("store_restored", extra={"kinds": [k.value for k in _store.kinds()]})
        return _store


@app.get("/", response_class=HTMLResponse)
def root() -> str:
    return (
        "<h2>Clinic Analytics Backend</h2>"
        "<ul>"
        "<li><a href='/docs'>API docs</a></li>"
        "<li><a href='/api/dashboard'>Dashboard JSON</a></li>"
        "<li><a href='/health'>Health</a></li>"
        "</ul>"
    )


@app.get("/favicon.ico")
def favicon() -> Response:
    # Avoid noisy 404s in browser devtools.
    return Response(status_code=204)


@app.get("/health")
def health() -> Dict[str, Any]:
    """Lightweight liveness check."""

    return {"status": "ok", "environment": settings.environment}


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler to avoid leaking internal errors in responses.

    The stack trace goes to the logs; clients only get a generic message.
    """

    logger.exception("Unhandled exception during request", extra={"path": str(request.url)})

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "path": str(request.url),
        },
    )


# ---- CSV ingestion ----


@app.post("/api/csv/{kind}")
def api_ingest_csv(kind: CsvKind, body: CsvBody, store: DashboardDataStore = Depends(get_store)) -> Dict[str, Any]:
    status = store.ingest(kind, body.data)

    try:
        update_from_status(kind.value, status)
    except Exception:  # pragma: no cover - metrics should not break the API
        logger.exception("Failed to update Prometheus metrics from upload status")

    try:
        save_store(store)
    except Exception:  # pragma: no cover - persistence is best-effort
        logger.exception("Failed to persist dataset snapshot to SQLite")

    logger.info(
        "csv_ingested",
        extra={"kind": kind.value, "rows": status.row_count, "errors": status.error_count},
    )
    return {"kind": kind.value, **status.to_dict()}


@app.get("/api/status")
def api_status(store: DashboardDataStore = Depends(get_store)) -> Dict[str, Any]:
    statuses = store.statuses()
    return {kind.value: (statuses[kind].to_dict() if kind in statuses else None) for kind in CsvKind}


@app.get("/api/dashboard")
def api_dashboard(
    month: Optional[str] = None,
    diagnosis_start: Optional[str] = None,
    diagnosis_end: Optional[str] = None,
    store: DashboardDataStore = Depends(get_store),
) -> Dict[str, Any]:
    config = PipelineConfig(month=month, diagnosis_start_month=diagnosis_start, diagnosis_end_month=diagnosis_end)
    return build_dashboard_payload(store, config)


# ---- Sharing ----


@app.post("/api/upload")
def api_upload(body: UploadBody) -> Dict[str, Any]:
    share_id = save_shared_data(body.type, body.data, body.category)
    record_share_upload(body.type)
    logger.info("shared_data_stored", extra={"share_id": share_id, "type": body.type})
    return {"id": share_id, "url": f"{settings.share_base_url}?data={share_id}"}


@app.get("/api/data/{share_id}")
def api_shared_data(share_id: str) -> Dict[str, Any]:
    shared = get_shared_data(share_id)
    if shared is None:
        raise HTTPException(status_code=404, detail="Data not found")
    return shared


@app.get("/metrics")
def metrics() -> Response:
    """Expose Prometheus metrics for scraping.

    This uses the default process-wide registry from `prometheus_client`.
    """

    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)

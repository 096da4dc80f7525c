from __future__ import annotations

"""SQLite-backed key-value storage for dashboard data snapshots.

Each CSV kind is stored under its own key so an upload only rewrites the
dataset it replaced. `load_snapshot` reassembles the keys into the shape
`DashboardDataStore.from_snapshot` expects.
"""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Set

from backend.config import get_settings
from clinic_data_store import SNAPSHOT_VERSION, DashboardDataStore


_INITIALIZED_PATHS: Set[Path] = set()


def _db_path() -> Path:
    settings = get_settings()
    return Path(settings.db_path).resolve()


def _ensure_initialized() -> None:
    path = _db_path()
    if path in _INITIALIZED_PATHS:
        return

    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS dataset_snapshots (
                kind TEXT PRIMARY KEY,
                updated_at TEXT NOT NULL,
                payload TEXT NOT NULL
            )
            """
        )
        conn.commit()
    finally:
        conn.close()

    _INITIALIZED_PATHS.add(path)


def save_store(store: DashboardDataStore) -> int:
    """Upsert every dataset held by ``store``; returns the number written."""

    _ensure_initialized()
    datasets = store.snapshot()["datasets"]
    updated_at = datetime.now(timezone.utc).isoformat()
    conn = sqlite3.connect(_db_path())
    try:
        conn.executemany(
            """
            INSERT INTO dataset_snapshots (kind, updated_at, payload)
            VALUES (?, ?, ?)
            ON CONFLICT(kind) DO UPDATE SET updated_at = excluded.updated_at, payload = excluded.payload
            """,
            [(kind, updated_at, json.dumps(dataset, ensure_ascii=False)) for kind, dataset in datasets.items()],
        )
        conn.commit()
    finally:
        conn.close()
    return len(datasets)


def load_snapshot() -> Optional[Dict[str, Any]]:
    """Return the stored snapshot, or None when nothing was saved yet."""

    _ensure_initialized()
    conn = sqlite3.connect(_db_path())
    try:
        rows = conn.execute("SELECT kind, payload FROM dataset_snapshots ORDER BY kind").fetchall()
    finally:
        conn.close()

    if not rows:
        return None
    return {
        "version": SNAPSHOT_VERSION,
        "datasets": {kind: json.loads(payload) for kind, payload in rows},
    }


def load_store() -> DashboardDataStore:
    return DashboardDataStore.from_snapshot(load_snapshot())

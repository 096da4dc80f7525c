from __future__ import annotations

"""SQLite-backed storage for shared CSV payloads.

A payload is stored once under a random id and can be fetched by anyone
holding that id. There is no update or delete; re-sharing creates a new id.
"""

import json
import secrets
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Set

from backend.config import get_settings


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
            CREATE TABLE IF NOT EXISTS shared_data (
                id TEXT PRIMARY KEY,
                data_type TEXT NOT NULL,
                category TEXT,
                payload TEXT NOT NULL,
                uploaded_at TEXT NOT NULL
            )
            """
        )
        conn.commit()
    finally:
        conn.close()

    _INITIALIZED_PATHS.add(path)


def generate_share_id() -> str:
    return secrets.token_hex(12)


def save_shared_data(data_type: str, data: Any, category: Optional[str] = None) -> str:
    """Persist one shared payload and return its id."""

    _ensure_initialized()
    share_id = generate_share_id()
    uploaded_at = datetime.now(timezone.utc).isoformat()
    conn = sqlite3.connect(_db_path())
    try:
        conn.execute(
            """
            INSERT INTO shared_data (id, data_type, category, payload, uploaded_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (share_id, data_type, category, json.dumps(data, ensure_ascii=False), uploaded_at),
        )
        conn.commit()
    finally:
        conn.close()
    return share_id


def get_shared_data(share_id: str) -> Optional[Dict[str, Any]]:
    """Return ``{type, category, data, uploadedAt}`` or None for unknown ids."""

    _ensure_initialized()
    conn = sqlite3.connect(_db_path())
    try:
        row = conn.execute(
            "SELECT data_type, category, payload, uploaded_at FROM shared_data WHERE id = ?",
            (share_id,),
        ).fetchone()
    finally:
        conn.close()

    if row is None:
        return None
    data_type, category, payload, uploaded_at = row
    return {
        "type": data_type,
        "category": category,
        "data": json.loads(payload),
        "uploadedAt": uploaded_at,
    }

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

SQLITE_BUSY_TIMEOUT_MS = 15_000


def _busy_timeout_ms() -> int:
    try:
        value = int((os.environ.get("SQLITE_BUSY_TIMEOUT_MS") or str(SQLITE_BUSY_TIMEOUT_MS)).strip())
    except ValueError:
        value = SQLITE_BUSY_TIMEOUT_MS
    return max(1000, min(int(value), 5 * 60_000))


def apply_sqlite_pragmas(dbapi_connection: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys = ON")
        try:
            cursor.execute("PRAGMA journal_mode = WAL")
            cursor.fetchone()
        except Exception:
            # In-memory databases refuse WAL.
            pass
        cursor.execute("PRAGMA synchronous = NORMAL")
        cursor.execute(f"PRAGMA busy_timeout = {_busy_timeout_ms()}")
    finally:
        cursor.close()


def ensure_sqlite_dir(database_url: str) -> None:
    url = make_url(database_url)
    if (url.get_backend_name() or "").lower() != "sqlite":
        return
    db_path = str(url.database or "").strip()
    if not db_path or db_path == ":memory:":
        return
    Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def create_engine(database_url: str) -> AsyncEngine:
    is_sqlite = database_url.lower().startswith("sqlite")
    kwargs: dict[str, Any] = {}
    if is_sqlite:
        ensure_sqlite_dir(database_url)
        kwargs["connect_args"] = {"timeout": float(_busy_timeout_ms()) / 1000.0}

    engine = create_async_engine(database_url, **kwargs)

    if is_sqlite:
        def _on_connect(dbapi_connection: Any, _record: Any) -> None:
            apply_sqlite_pragmas(dbapi_connection)

        event.listen(engine.sync_engine, "connect", _on_connect)

    return engine

"""Embedded SQLite backend."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from ..errors import PersistenceConflict
from ..models import AttemptRecord, LogoEntity, utcnow
from .base import ENTITY_COLUMNS, LogoRepository, check_update_fields


logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS logos (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    domain TEXT NOT NULL UNIQUE,
    original_source_url TEXT,
    remote_ref_id TEXT,
    remote_ref_url TEXT,
    remote_revoke_token TEXT,
    inline_binary BLOB,
    format TEXT,
    byte_size INTEGER,
    width INTEGER,
    height INTEGER,
    extracted_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS logo_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_id INTEGER REFERENCES logos (id) ON DELETE CASCADE,
    attempted_url TEXT NOT NULL,
    success INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    attempted_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_logos_updated_at ON logos (updated_at);
CREATE INDEX IF NOT EXISTS idx_logo_attempts_entity_id ON logo_attempts (entity_id);
"""


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class SQLiteRepository(LogoRepository):
    """Repository over a single SQLite file.

    sqlite3 is blocking, so every statement runs on a worker thread; a lock
    serializes access to the shared connection.
    """

    name = "sqlite"

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    async def initialize(self) -> None:
        await asyncio.to_thread(self._open)
        logger.info(f"Connected to SQLite database at {self.path}")

    def _open(self) -> None:
        if str(self.path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.executescript(SCHEMA)
        conn.commit()
        self._conn = conn

    async def close(self) -> None:
        if self._conn is not None:
            with self._lock:
                self._conn.close()
            self._conn = None

    async def _run(self, func, *args):
        if self._conn is None:
            raise RuntimeError("Repository is not initialized")
        return await asyncio.to_thread(self._locked, func, *args)

    def _locked(self, func, *args):
        with self._lock:
            try:
                result = func(self._conn, *args)
                self._conn.commit()
                return result
            except Exception:
                self._conn.rollback()
                raise

    async def create(self, entity: LogoEntity) -> LogoEntity:
        now = utcnow()
        values = entity.model_dump()
        values["created_at"] = values.get("created_at") or now
        values["updated_at"] = now

        def insert(conn: sqlite3.Connection) -> int:
            placeholders = ", ".join("?" for _ in ENTITY_COLUMNS)
            try:
                cursor = conn.execute(
                    f"INSERT INTO logos ({', '.join(ENTITY_COLUMNS)}) VALUES ({placeholders})",
                    [_to_db(values[column]) for column in ENTITY_COLUMNS],
                )
            except sqlite3.IntegrityError as e:
                if "UNIQUE" in str(e).upper():
                    raise PersistenceConflict(entity.domain) from e
                raise
            return cursor.lastrowid

        entity_id = await self._run(insert)
        return await self.find_by_id(entity_id)

    async def find_by_domain(self, domain: str) -> LogoEntity | None:
        return await self._fetch_entity("SELECT * FROM logos WHERE domain = ?", domain)

    async def find_by_id(self, entity_id: int) -> LogoEntity | None:
        return await self._fetch_entity("SELECT * FROM logos WHERE id = ?", entity_id)

    async def _fetch_entity(self, sql: str, *params) -> LogoEntity | None:
        def select(conn: sqlite3.Connection):
            return conn.execute(sql, params).fetchone()

        row = await self._run(select)
        return LogoEntity.from_row(row) if row is not None else None

    async def update(self, entity_id: int, fields: dict[str, Any]) -> LogoEntity | None:
        check_update_fields(fields)
        values = dict(fields)
        values["updated_at"] = utcnow()
        assignments = ", ".join(f"{column} = ?" for column in values)

        def apply(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                f"UPDATE logos SET {assignments} WHERE id = ?",
                [_to_db(value) for value in values.values()] + [entity_id],
            )
            return cursor.rowcount

        if not await self._run(apply):
            return None
        return await self.find_by_id(entity_id)

    async def list(self, limit: int = 50, offset: int = 0) -> list[LogoEntity]:
        def select(conn: sqlite3.Connection):
            return conn.execute(
                "SELECT * FROM logos ORDER BY updated_at DESC, id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()

        return [LogoEntity.from_row(row) for row in await self._run(select)]

    async def delete(self, entity_id: int) -> bool:
        def remove(conn: sqlite3.Connection) -> int:
            return conn.execute("DELETE FROM logos WHERE id = ?", (entity_id,)).rowcount

        return bool(await self._run(remove))

    async def record_attempt(
        self,
        entity_id: int | None,
        url: str,
        success: bool,
        error: str | None = None,
    ) -> AttemptRecord:
        attempted_at = utcnow()

        def insert(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                "INSERT INTO logo_attempts "
                "(entity_id, attempted_url, success, error_message, attempted_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (entity_id, url, int(success), error, attempted_at.isoformat()),
            )
            return cursor.lastrowid

        attempt_id = await self._run(insert)
        return AttemptRecord(
            id=attempt_id,
            entity_id=entity_id,
            attempted_url=url,
            success=success,
            error_message=error,
            attempted_at=attempted_at,
        )

    async def list_attempts(self, entity_id: int) -> list[AttemptRecord]:
        def select(conn: sqlite3.Connection):
            return conn.execute(
                "SELECT * FROM logo_attempts WHERE entity_id = ? "
                "ORDER BY attempted_at DESC, id DESC",
                (entity_id,),
            ).fetchall()

        return [AttemptRecord.from_row(row) for row in await self._run(select)]

    def describe(self) -> dict[str, Any]:
        return {"type": self.name, "provider": "SQLite (Local)", "path": str(self.path)}

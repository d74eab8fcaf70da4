"""Networked PostgreSQL backend on an asyncpg connection pool."""

from __future__ import annotations

import logging
from typing import Any

import asyncpg

from ..errors import PersistenceConflict
from ..models import AttemptRecord, LogoEntity, utcnow
from .base import ENTITY_COLUMNS, LogoRepository, check_update_fields


logger = logging.getLogger(__name__)


SCHEMA_STATEMENTS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS logos (
        id SERIAL PRIMARY KEY,
        name VARCHAR(255) NOT NULL,
        domain VARCHAR(255) NOT NULL UNIQUE,
        original_source_url TEXT,
        remote_ref_id VARCHAR(255),
        remote_ref_url TEXT,
        remote_revoke_token TEXT,
        inline_binary BYTEA,
        format VARCHAR(16),
        byte_size INTEGER,
        width INTEGER,
        height INTEGER,
        extracted_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS logo_attempts (
        id SERIAL PRIMARY KEY,
        entity_id INTEGER REFERENCES logos (id) ON DELETE CASCADE,
        attempted_url TEXT NOT NULL,
        success BOOLEAN NOT NULL DEFAULT FALSE,
        error_message TEXT,
        attempted_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_logos_updated_at ON logos (updated_at)",
    "CREATE INDEX IF NOT EXISTS idx_logo_attempts_entity_id ON logo_attempts (entity_id)",
]


class PostgresRepository(LogoRepository):
    """Repository over a PostgreSQL database (self-hosted or managed)."""

    name = "postgres"

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.pool: asyncpg.Pool | None = None

    async def initialize(self) -> None:
        self.pool = await asyncpg.create_pool(
            self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            command_timeout=30,
            # PgBouncer in transaction mode cannot share prepared statements
            statement_cache_size=0,
        )
        async with self.pool.acquire() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
        logger.info("Connected to PostgreSQL database")

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    def _pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise RuntimeError("Repository is not initialized")
        return self.pool

    async def create(self, entity: LogoEntity) -> LogoEntity:
        now = utcnow()
        values = entity.model_dump()
        values["created_at"] = values.get("created_at") or now
        values["updated_at"] = now

        placeholders = ", ".join(f"${i}" for i in range(1, len(ENTITY_COLUMNS) + 1))
        query = (
            f"INSERT INTO logos ({', '.join(ENTITY_COLUMNS)}) "
            f"VALUES ({placeholders}) RETURNING *"
        )
        try:
            row = await self._pool().fetchrow(
                query, *[values[column] for column in ENTITY_COLUMNS]
            )
        except asyncpg.UniqueViolationError as e:
            raise PersistenceConflict(entity.domain) from e
        return LogoEntity.from_row(row)

    async def find_by_domain(self, domain: str) -> LogoEntity | None:
        row = await self._pool().fetchrow("SELECT * FROM logos WHERE domain = $1", domain)
        return LogoEntity.from_row(row) if row is not None else None

    async def find_by_id(self, entity_id: int) -> LogoEntity | None:
        row = await self._pool().fetchrow("SELECT * FROM logos WHERE id = $1", entity_id)
        return LogoEntity.from_row(row) if row is not None else None

    async def update(self, entity_id: int, fields: dict[str, Any]) -> LogoEntity | None:
        check_update_fields(fields)
        values = dict(fields)
        values["updated_at"] = utcnow()
        assignments = ", ".join(
            f"{column} = ${index}" for index, column in enumerate(values, start=2)
        )
        row = await self._pool().fetchrow(
            f"UPDATE logos SET {assignments} WHERE id = $1 RETURNING *",
            entity_id,
            *values.values(),
        )
        return LogoEntity.from_row(row) if row is not None else None

    async def list(self, limit: int = 50, offset: int = 0) -> list[LogoEntity]:
        rows = await self._pool().fetch(
            "SELECT * FROM logos ORDER BY updated_at DESC, id DESC LIMIT $1 OFFSET $2",
            limit,
            offset,
        )
        return [LogoEntity.from_row(row) for row in rows]

    async def delete(self, entity_id: int) -> bool:
        status = await self._pool().execute("DELETE FROM logos WHERE id = $1", entity_id)
        # asyncpg returns the command tag, e.g. "DELETE 1"
        return status.split()[-1] != "0"

    async def record_attempt(
        self,
        entity_id: int | None,
        url: str,
        success: bool,
        error: str | None = None,
    ) -> AttemptRecord:
        row = await self._pool().fetchrow(
            "INSERT INTO logo_attempts "
            "(entity_id, attempted_url, success, error_message, attempted_at) "
            "VALUES ($1, $2, $3, $4, $5) RETURNING *",
            entity_id,
            url,
            success,
            error,
            utcnow(),
        )
        return AttemptRecord.from_row(row)

    async def list_attempts(self, entity_id: int) -> list[AttemptRecord]:
        rows = await self._pool().fetch(
            "SELECT * FROM logo_attempts WHERE entity_id = $1 "
            "ORDER BY attempted_at DESC, id DESC",
            entity_id,
        )
        return [AttemptRecord.from_row(row) for row in rows]

    def describe(self) -> dict[str, Any]:
        provider = "PostgreSQL (Cloud)"
        for marker, label in (
            ("supabase", "Supabase (PostgreSQL)"),
            ("neon", "Neon (PostgreSQL)"),
            ("railway", "Railway (PostgreSQL)"),
        ):
            if marker in self.dsn:
                provider = label
                break
        return {"type": self.name, "provider": provider, "pool_max": self.max_size}

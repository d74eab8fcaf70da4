"""Storage-agnostic repository contract for logos and attempt records."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..models import AttemptRecord, LogoEntity


# Columns callers may change through update(); updated_at is always refreshed
UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "original_source_url",
        "remote_ref_id",
        "remote_ref_url",
        "remote_revoke_token",
        "inline_binary",
        "format",
        "byte_size",
        "width",
        "height",
        "extracted_at",
    }
)

# Insert order for the logos table
ENTITY_COLUMNS: tuple[str, ...] = (
    "name",
    "domain",
    "original_source_url",
    "remote_ref_id",
    "remote_ref_url",
    "remote_revoke_token",
    "inline_binary",
    "format",
    "byte_size",
    "width",
    "height",
    "extracted_at",
    "created_at",
    "updated_at",
)


def check_update_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update columns: {', '.join(sorted(unknown))}")


class LogoRepository(ABC):
    """Persistence gateway shared by every backend.

    Implementations enforce a unique domain (raising PersistenceConflict on a
    duplicate insert) and delete attempt records together with their entity.
    """

    name: str = "repository"

    async def __aenter__(self) -> "LogoRepository":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections and create the schema if missing."""

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    async def create(self, entity: LogoEntity) -> LogoEntity:
        """Insert a new entity and return it with id and timestamps set."""

    @abstractmethod
    async def find_by_domain(self, domain: str) -> LogoEntity | None:
        ...

    @abstractmethod
    async def find_by_id(self, entity_id: int) -> LogoEntity | None:
        ...

    @abstractmethod
    async def update(self, entity_id: int, fields: dict[str, Any]) -> LogoEntity | None:
        """Apply fields in one statement; None if the entity does not exist."""

    @abstractmethod
    async def list(self, limit: int = 50, offset: int = 0) -> list[LogoEntity]:
        """Entities ordered by most recently updated first."""

    @abstractmethod
    async def delete(self, entity_id: int) -> bool:
        """Delete an entity and its attempts; False if it did not exist."""

    @abstractmethod
    async def record_attempt(
        self,
        entity_id: int | None,
        url: str,
        success: bool,
        error: str | None = None,
    ) -> AttemptRecord:
        ...

    @abstractmethod
    async def list_attempts(self, entity_id: int) -> list[AttemptRecord]:
        """Attempts for an entity, newest first."""

    def describe(self) -> dict[str, Any]:
        return {"type": self.name}

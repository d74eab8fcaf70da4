"""Persistence gateway: one repository contract, two interchangeable backends."""

from ..config import Settings
from .base import LogoRepository
from .sqlite import SQLiteRepository


def create_repository(settings: Settings) -> LogoRepository:
    """Instantiate the backend selected by configuration (not yet initialized)."""
    if settings.database_backend == "postgres":
        if not settings.database_url:
            raise ValueError("LOGO_KEEPER_DATABASE_URL is required for the postgres backend")

        from .postgres import PostgresRepository

        return PostgresRepository(
            settings.database_url,
            min_size=settings.database_pool_min,
            max_size=settings.database_pool_max,
        )
    return SQLiteRepository(settings.sqlite_path)


__all__ = ["LogoRepository", "SQLiteRepository", "create_repository"]

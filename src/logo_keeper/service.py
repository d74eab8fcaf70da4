"""Logo extraction service: cache check, strategy walk, normalize, store, persist."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from .config import Settings
from .domain import display_name, normalize_domain
from .errors import NoLogoFound, NotFound, PersistenceConflict
from .fetcher import ImageFetcher
from .models import AttemptRecord, ImageArtifact, LogoEntity, utcnow
from .normalizer import ImageNormalizer
from .persistence import LogoRepository, create_repository
from .selector import StrategyTable, default_strategy_table, select_strategies
from .storage import ImgBBStorage, StoredImage
from .strategies import AttemptLog


logger = logging.getLogger(__name__)


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Shared client for page fetches, image downloads and uploads."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        follow_redirects=True,
        max_redirects=settings.page_max_redirects,
    )


class LogoService:
    """Resolves domains to stored logos.

    Every collaborator is passed in explicitly; use ``from_settings`` to wire
    the default HTTP client, strategies, storage and repository.
    """

    def __init__(
        self,
        repository: LogoRepository,
        storage: ImgBBStorage,
        strategy_table: StrategyTable,
        settings: Settings,
        normalizer: ImageNormalizer | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.repository = repository
        self.storage = storage
        self.strategy_table = strategy_table
        self.settings = settings
        self.normalizer = normalizer or ImageNormalizer(settings.max_dimension)
        self.client = client

    @classmethod
    async def from_settings(cls, settings: Settings | None = None) -> LogoService:
        settings = settings or Settings()
        client = build_http_client(settings)
        normalizer = ImageNormalizer(settings.max_dimension)
        fetcher = ImageFetcher(client, settings, normalizer)

        repository = create_repository(settings)
        try:
            await repository.initialize()
        except Exception:
            await client.aclose()
            raise

        return cls(
            repository=repository,
            storage=ImgBBStorage(client, settings, normalizer),
            strategy_table=default_strategy_table(fetcher, client, settings),
            settings=settings,
            normalizer=normalizer,
            client=client,
        )

    async def close(self) -> None:
        await self.repository.close()
        if self.client is not None:
            await self.client.aclose()

    async def __aenter__(self) -> LogoService:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def extract(
        self, domain: str, name: str | None = None, force: bool = False
    ) -> LogoEntity:
        """Return the stored logo for domain, extracting it when needed.

        With ``force`` a fresh extraction always runs and, on success, replaces
        the stored image fields in place; on failure the stored logo is left
        untouched. Raises InvalidDomain for malformed input and NoLogoFound
        when every strategy is exhausted or the request deadline passes.
        """
        domain = normalize_domain(domain)

        existing = await self.repository.find_by_domain(domain)
        if existing is not None and not force:
            logger.info(f"Cache hit for {domain} (id {existing.id})")
            return existing

        attempts = AttemptLog()
        try:
            artifact = await asyncio.wait_for(
                self._run_strategies(domain, attempts),
                timeout=self.settings.request_deadline_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Extraction for {domain} exceeded "
                f"{self.settings.request_deadline_seconds}s deadline"
            )
            artifact = None

        if artifact is None:
            await self._record_attempts(existing.id if existing else None, attempts)
            raise NoLogoFound(domain)

        artifact = self.normalizer.normalize(artifact)
        stored = await self.storage.store(artifact, f"{domain}_logo.{artifact.format}")
        fields = self._image_fields(artifact, stored)

        entity = None
        if existing is not None:
            if name:
                fields["name"] = name
            entity = await self.repository.update(existing.id, fields)
            if entity is None:
                logger.warning(f"Logo for {domain} was deleted during re-extraction")
                fields.pop("name", None)

        if entity is None:
            entity = await self._create(domain, name, fields)

        await self._record_attempts(entity.id, attempts)
        logger.info(
            f"Stored logo for {domain}: {entity.format} "
            f"({'imgbb' if entity.uses_remote_storage else 'inline'}, {entity.byte_size} bytes)"
        )
        return entity

    async def _run_strategies(self, domain: str, attempts: AttemptLog) -> ImageArtifact | None:
        """Walk the selected strategies in order; first artifact wins."""
        for strategy in select_strategies(domain, self.strategy_table):
            try:
                artifact = await strategy.extract(domain, attempts)
            except Exception as e:
                logger.warning(f"Method {strategy.name} failed for {domain}: {e}")
                continue
            if artifact is not None:
                return artifact
        logger.info(f"All strategies exhausted for {domain} after {len(attempts)} attempts")
        return None

    async def _create(self, domain: str, name: str | None, fields: dict[str, Any]) -> LogoEntity:
        entity = LogoEntity(name=name or display_name(domain), domain=domain, **fields)
        try:
            return await self.repository.create(entity)
        except PersistenceConflict:
            # A concurrent request stored this domain first; its row wins
            winner = await self.repository.find_by_domain(domain)
            if winner is None:
                raise
            logger.warning(f"Concurrent extraction for {domain}; keeping id {winner.id}")
            return winner

    @staticmethod
    def _image_fields(artifact: ImageArtifact, stored: StoredImage) -> dict[str, Any]:
        """All image-derived columns, so stale storage modes are cleared too."""
        width, height = stored.width, stored.height
        if width is None or height is None:
            width = height = None

        remote = stored.remote
        return {
            "original_source_url": artifact.url,
            "remote_ref_id": remote.id if remote else None,
            "remote_ref_url": remote.url if remote else None,
            "remote_revoke_token": remote.revoke_token if remote else None,
            "inline_binary": None if remote else stored.inline,
            "format": stored.format,
            "byte_size": stored.size,
            "width": width,
            "height": height,
            "extracted_at": utcnow(),
        }

    async def _record_attempts(self, entity_id: int | None, attempts: AttemptLog) -> None:
        for attempt in attempts.attempts:
            try:
                await self.repository.record_attempt(
                    entity_id, attempt.url, attempt.success, attempt.error
                )
            except Exception as e:
                logger.warning(f"Failed to record attempt for {attempt.url}: {e}")

    async def get(self, entity_id: int) -> LogoEntity:
        entity = await self.repository.find_by_id(entity_id)
        if entity is None:
            raise NotFound(f"No logo with id {entity_id}")
        return entity

    async def get_by_domain(self, domain: str) -> LogoEntity:
        domain = normalize_domain(domain)
        entity = await self.repository.find_by_domain(domain)
        if entity is None:
            raise NotFound(f"No logo for {domain}")
        return entity

    async def list(self, limit: int = 50, offset: int = 0) -> list[LogoEntity]:
        return await self.repository.list(limit=limit, offset=offset)

    async def delete(self, entity_id: int) -> bool:
        """Delete a logo and its attempts; the remote copy is revoked best-effort."""
        entity = await self.repository.find_by_id(entity_id)
        if entity is None:
            return False
        if entity.uses_remote_storage and not await self.storage.revoke(entity):
            logger.warning(f"Remote image for {entity.domain} was not revoked")
        return await self.repository.delete(entity_id)

    async def retrieve_image(self, entity: LogoEntity) -> tuple[bytes, str]:
        return await self.storage.fetch(entity)

    async def list_attempts(self, entity_id: int) -> list[AttemptRecord]:
        await self.get(entity_id)
        return await self.repository.list_attempts(entity_id)

    def health(self) -> dict[str, Any]:
        return {
            "status": "OK",
            "timestamp": utcnow().isoformat(),
            "database": self.repository.describe(),
            "storage": self.storage.describe(),
        }

import asyncio
import os
import sqlite3
import tempfile
import unittest
from io import BytesIO
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import httpx
from PIL import Image

from logo_keeper.config import Settings
from logo_keeper.errors import InvalidDomain, NoLogoFound, NotFound, PersistenceConflict
from logo_keeper.fetcher import ImageFetcher
from logo_keeper.models import ImageArtifact, LogoEntity
from logo_keeper.normalizer import ImageNormalizer
from logo_keeper.persistence import SQLiteRepository
from logo_keeper.selector import always, default_strategy_table
from logo_keeper.service import LogoService
from logo_keeper.storage import ImgBBStorage
from logo_keeper.strategies import Strategy


def make_png(size=(64, 64)) -> bytes:
    img = Image.frombytes("RGB", size, os.urandom(size[0] * size[1] * 3))
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class SlowStrategy(Strategy):
    name = "slow"

    async def candidate_urls(self, domain, attempts):
        return [f"https://{domain}/slow.png"]

    async def extract(self, domain, attempts):
        attempts.failure(f"https://{domain}/slow.png", "started")
        await asyncio.sleep(5)
        return None


class ExplodingStrategy(Strategy):
    name = "exploding"

    async def candidate_urls(self, domain, attempts):
        return []

    async def extract(self, domain, attempts):
        raise RuntimeError("boom")


class StaticStrategy(Strategy):
    name = "static"

    def __init__(self, artifact):
        super().__init__(None)
        self.artifact = artifact

    async def candidate_urls(self, domain, attempts):
        return [self.artifact.url]

    async def extract(self, domain, attempts):
        attempts.success(self.artifact.url)
        return self.artifact


class TestLogoService(unittest.IsolatedAsyncioTestCase):
    """End-to-end extraction against mocked HTTP and a real SQLite file."""

    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self.tmp.name) / "logos.db"
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, httpx.Response] = {}
        self.delays: dict[str, float] = {}
        self.png = make_png()

    async def asyncTearDown(self):
        await self.service.close()
        self.tmp.cleanup()

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url in self.delays:
            await asyncio.sleep(self.delays[url])
        if url in self.routes:
            return self.routes[url]
        if request.url.host == "api.imgbb.com":
            return httpx.Response(500, json={"success": False})
        return httpx.Response(404)

    async def make_service(self, strategy_table=None, **overrides) -> LogoService:
        values = dict(
            sqlite_path=self.db_path,
            download_retries=0,
            retry_delay_seconds=0,
            imgbb_api_key=None,
        )
        values.update(overrides)
        settings = Settings(_env_file=None, **values)

        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        normalizer = ImageNormalizer(settings.max_dimension)
        fetcher = ImageFetcher(client, settings, normalizer)
        repository = SQLiteRepository(settings.sqlite_path)
        await repository.initialize()

        self.service = LogoService(
            repository=repository,
            storage=ImgBBStorage(client, settings, normalizer),
            strategy_table=strategy_table or default_strategy_table(fetcher, client, settings),
            settings=settings,
            normalizer=normalizer,
            client=client,
        )
        return self.service

    def unlinked_attempts(self) -> list[tuple]:
        conn = sqlite3.connect(self.db_path)
        try:
            return conn.execute(
                "SELECT attempted_url, success FROM logo_attempts "
                "WHERE entity_id IS NULL ORDER BY id"
            ).fetchall()
        finally:
            conn.close()

    async def test_extract_from_third_party_service(self):
        service = await self.make_service()
        self.routes["https://logo.clearbit.com/example.com"] = httpx.Response(200, content=self.png)

        entity = await service.extract("https://www.Example.com/")

        self.assertIsNotNone(entity.id)
        self.assertEqual(entity.domain, "example.com")
        self.assertEqual(entity.name, "Example")
        self.assertEqual(entity.original_source_url, "https://logo.clearbit.com/example.com")
        self.assertEqual(entity.format, "png")
        self.assertEqual((entity.width, entity.height), (64, 64))
        self.assertEqual(entity.inline_binary, self.png)
        self.assertIsNone(entity.remote_ref_url)
        self.assertIsNotNone(entity.extracted_at)

        attempts = await service.list_attempts(entity.id)
        self.assertEqual(len(attempts), 1)
        self.assertTrue(attempts[0].success)

    async def test_cached_result_makes_no_requests(self):
        service = await self.make_service()
        self.routes["https://logo.clearbit.com/example.com"] = httpx.Response(200, content=self.png)

        first = await service.extract("example.com", name="Example Inc")
        request_count = len(self.requests)
        second = await service.extract("WWW.EXAMPLE.COM")

        self.assertEqual(len(self.requests), request_count)
        self.assertEqual(second.id, first.id)
        self.assertEqual(second.name, "Example Inc")

    async def test_force_replaces_image_in_place(self):
        service = await self.make_service()
        self.routes["https://logo.clearbit.com/example.com"] = httpx.Response(200, content=self.png)
        first = await service.extract("example.com")

        del self.routes["https://logo.clearbit.com/example.com"]
        large = make_png((600, 300))
        self.routes["https://unavatar.io/example.com"] = httpx.Response(200, content=large)
        second = await service.extract("example.com", force=True)

        self.assertEqual(second.id, first.id)
        self.assertEqual(second.created_at, first.created_at)
        self.assertGreaterEqual(second.extracted_at, first.extracted_at)
        self.assertEqual(second.original_source_url, "https://unavatar.io/example.com")
        self.assertEqual((second.width, second.height), (512, 256))
        self.assertNotEqual(second.inline_binary, first.inline_binary)
        self.assertEqual(len(await service.list()), 1)

    async def test_failed_force_keeps_existing_logo(self):
        service = await self.make_service()
        self.routes["https://logo.clearbit.com/example.com"] = httpx.Response(200, content=self.png)
        first = await service.extract("example.com")

        self.routes.clear()
        with self.assertRaises(NoLogoFound):
            await service.extract("example.com", force=True)

        current = await service.get(first.id)
        self.assertEqual(current.inline_binary, first.inline_binary)
        self.assertEqual(current.original_source_url, first.original_source_url)

    async def test_no_logo_found_records_every_url(self):
        service = await self.make_service()

        with self.assertRaises(NoLogoFound) as ctx:
            await service.extract("nologo.example")

        self.assertEqual(ctx.exception.domain, "nologo.example")
        attempts = self.unlinked_attempts()
        urls = [url for url, _ in attempts]
        # 4 services + 4 favicons + homepage + 7 common paths
        self.assertEqual(len(attempts), 16)
        self.assertEqual(urls[0], "https://logo.clearbit.com/nologo.example")
        self.assertIn("https://nologo.example/", urls)
        self.assertEqual(urls[-1], "https://nologo.example/img/logo.png")
        self.assertFalse(any(success for _, success in attempts))
        self.assertEqual(await service.list(), [])

    async def test_scraped_homepage_logo(self):
        service = await self.make_service()
        self.routes["https://shop.example/"] = httpx.Response(
            200, text='<html><img src="/assets/logo.png" alt="Shop logo"></html>'
        )
        self.routes["https://shop.example/assets/logo.png"] = httpx.Response(200, content=self.png)

        entity = await service.extract("shop.example")

        self.assertEqual(entity.original_source_url, "https://shop.example/assets/logo.png")
        # Attempts are listed newest first
        attempts = list(reversed(await service.list_attempts(entity.id)))
        attempted = [a.attempted_url for a in attempts]
        self.assertEqual(len(attempted), 9)
        self.assertEqual(attempted[-1], "https://shop.example/assets/logo.png")
        self.assertTrue(attempts[-1].success)
        self.assertFalse(any(a.success for a in attempts[:-1]))
        self.assertNotIn("https://shop.example/logo.png", attempted)

        request_urls = [str(r.url) for r in self.requests]
        homepage = request_urls.index("https://shop.example/")
        self.assertGreater(request_urls.index("https://shop.example/assets/logo.png"), homepage)

    async def test_deadline_records_interrupted_download(self):
        service = await self.make_service(request_deadline_seconds=0.3)
        self.delays["https://logo.clearbit.com/example.com"] = 2

        with self.assertRaises(NoLogoFound):
            await service.extract("example.com")

        self.assertEqual(
            self.unlinked_attempts(), [("https://logo.clearbit.com/example.com", 0)]
        )
        conn = sqlite3.connect(self.db_path)
        try:
            (error,) = conn.execute("SELECT error_message FROM logo_attempts").fetchone()
        finally:
            conn.close()
        self.assertEqual(error, "deadline exceeded")

    async def test_deadline_records_interrupted_homepage_fetch(self):
        service = await self.make_service(request_deadline_seconds=0.3)
        self.delays["https://slowpage.example/"] = 2

        with self.assertRaises(NoLogoFound):
            await service.extract("slowpage.example")

        urls = [url for url, _ in self.unlinked_attempts()]
        self.assertEqual(urls[-1], "https://slowpage.example/")
        self.assertEqual(len(urls), 9)

    async def test_malformed_upload_response_stores_inline(self):
        service = await self.make_service(imgbb_api_key="test-key")
        self.routes["https://logo.clearbit.com/example.com"] = httpx.Response(200, content=self.png)
        self.routes["https://api.imgbb.com/1/upload?key=test-key"] = httpx.Response(
            200, json=["unexpected"]
        )

        entity = await service.extract("example.com")

        self.assertIsNotNone(entity.id)
        self.assertFalse(entity.uses_remote_storage)
        self.assertEqual(entity.inline_binary, self.png)

    async def test_upload_failure_stores_inline(self):
        service = await self.make_service(imgbb_api_key="test-key")
        self.routes["https://logo.clearbit.com/example.com"] = httpx.Response(200, content=self.png)

        entity = await service.extract("example.com")

        self.assertTrue(any(r.url.host == "api.imgbb.com" for r in self.requests))
        self.assertFalse(entity.uses_remote_storage)
        self.assertEqual(entity.inline_binary, self.png)
        data, content_type = await service.retrieve_image(entity)
        self.assertEqual((data, content_type), (self.png, "image/png"))

    async def test_successful_upload_stores_reference_only(self):
        service = await self.make_service(imgbb_api_key="test-key")
        self.routes["https://logo.clearbit.com/example.com"] = httpx.Response(200, content=self.png)
        self.routes["https://api.imgbb.com/1/upload?key=test-key"] = httpx.Response(
            200,
            json={
                "success": True,
                "data": {
                    "id": "xyz",
                    "url": "https://i.ibb.co/xyz/example.png",
                    "delete_url": "https://ibb.co/xyz/token",
                    "width": 64,
                    "height": 64,
                    "size": 2048,
                },
            },
        )

        entity = await service.extract("example.com")

        self.assertTrue(entity.uses_remote_storage)
        self.assertIsNone(entity.inline_binary)
        self.assertEqual(entity.remote_ref_id, "xyz")
        self.assertEqual(entity.byte_size, 2048)

        self.routes["https://ibb.co/xyz/token"] = httpx.Response(200)
        self.assertTrue(await service.delete(entity.id))
        self.assertIn("https://ibb.co/xyz/token", [str(r.url) for r in self.requests])
        with self.assertRaises(NotFound):
            await service.get(entity.id)

    async def test_deadline_expiry(self):
        service = await self.make_service(
            strategy_table=[(SlowStrategy(None), always)],
            request_deadline_seconds=0.05,
        )

        with self.assertRaises(NoLogoFound):
            await service.extract("slow.example")

        self.assertEqual(self.unlinked_attempts(), [("https://slow.example/slow.png", 0)])

    async def test_failing_strategy_does_not_abort(self):
        artifact = ImageArtifact("https://static.example/logo.png", self.png, "png", len(self.png), 64, 64)
        service = await self.make_service(
            strategy_table=[(ExplodingStrategy(None), always), (StaticStrategy(artifact), always)]
        )

        entity = await service.extract("static.example")
        self.assertEqual(entity.original_source_url, "https://static.example/logo.png")

    async def test_invalid_domain(self):
        service = await self.make_service()
        with self.assertRaises(InvalidDomain):
            await service.extract("not a domain")
        self.assertEqual(self.requests, [])

    async def test_lookup_and_delete(self):
        service = await self.make_service()
        self.routes["https://logo.clearbit.com/example.com"] = httpx.Response(200, content=self.png)
        entity = await service.extract("example.com")

        self.assertEqual((await service.get_by_domain("https://example.com/x")).id, entity.id)
        with self.assertRaises(NotFound):
            await service.get_by_domain("other.com")
        with self.assertRaises(NotFound):
            await service.list_attempts(9999)

        self.assertTrue(await service.delete(entity.id))
        self.assertFalse(await service.delete(entity.id))
        self.assertEqual(await service.list(), [])

    async def test_health(self):
        service = await self.make_service()
        info = service.health()
        self.assertEqual(info["status"], "OK")
        self.assertEqual(info["database"]["type"], "sqlite")
        self.assertEqual(info["storage"]["provider"], "Inline")


class TestConcurrentCreate(unittest.IsolatedAsyncioTestCase):
    """A losing concurrent insert returns the stored winner."""

    async def test_conflict_returns_winner(self):
        png = make_png()
        artifact = ImageArtifact("https://race.example/logo.png", png, "png", len(png), 64, 64)
        winner = LogoEntity(id=42, name="Race", domain="race.example", inline_binary=png, format="png")

        repository = MagicMock()
        repository.find_by_domain = AsyncMock(side_effect=[None, winner])
        repository.create = AsyncMock(side_effect=PersistenceConflict("race.example"))
        repository.record_attempt = AsyncMock(side_effect=RuntimeError("db gone"))
        storage = MagicMock()
        storage.store = AsyncMock(
            return_value=MagicMock(format="png", size=len(png), width=64, height=64, remote=None, inline=png)
        )

        service = LogoService(
            repository=repository,
            storage=storage,
            strategy_table=[(StaticStrategy(artifact), always)],
            settings=Settings(_env_file=None),
        )
        with self.assertLogs("logo_keeper.service", level="WARNING"):
            entity = await service.extract("race.example")

        self.assertEqual(entity.id, 42)
        repository.create.assert_awaited_once()
        repository.record_attempt.assert_awaited_once_with(42, "https://race.example/logo.png", True, None)


class TestFromSettings(unittest.IsolatedAsyncioTestCase):
    async def test_wires_default_components(self):
        with tempfile.TemporaryDirectory() as tmp:
            settings = Settings(_env_file=None, sqlite_path=Path(tmp) / "db" / "logos.db")
            async with await LogoService.from_settings(settings) as service:
                names = [strategy.name for strategy, _ in service.strategy_table]
                self.assertEqual(names, ["third-party", "favicon", "webpage", "common-paths"])
                self.assertEqual(await service.list(), [])
            self.assertTrue((Path(tmp) / "db" / "logos.db").exists())


if __name__ == "__main__":
    unittest.main()

import os
import unittest
from io import BytesIO

import httpx
from PIL import Image

from logo_keeper.config import Settings
from logo_keeper.errors import DownloadFailed
from logo_keeper.fetcher import ImageFetcher


def make_png(size=(64, 64)) -> bytes:
    img = Image.frombytes("RGB", size, os.urandom(size[0] * size[1] * 3))
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def make_settings(**overrides) -> Settings:
    values = dict(download_retries=2, retry_delay_seconds=0)
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestImageFetcher(unittest.IsolatedAsyncioTestCase):
    """Test bounded, retrying candidate downloads."""

    async def fetch(self, handler, url="https://example.com/logo.png", **overrides):
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = ImageFetcher(client, make_settings(**overrides))
            return await fetcher.fetch(url)

    async def test_successful_download(self):
        png = make_png((64, 32))

        def handler(request: httpx.Request) -> httpx.Response:
            self.assertIn("image/", request.headers["Accept"])
            self.assertEqual(request.headers["Referer"], "https://example.com/")
            return httpx.Response(200, content=png, headers={"Content-Type": "image/png"})

        artifact = await self.fetch(handler)

        self.assertEqual(artifact.url, "https://example.com/logo.png")
        self.assertEqual(artifact.data, png)
        self.assertEqual(artifact.format, "png")
        self.assertEqual(artifact.size, len(png))
        self.assertEqual((artifact.width, artifact.height), (64, 32))

    async def test_non_200_is_retried(self):
        png = make_png()
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url)
            if len(calls) < 3:
                return httpx.Response(500)
            return httpx.Response(200, content=png)

        artifact = await self.fetch(handler)

        self.assertEqual(len(calls), 3)
        self.assertEqual(artifact.data, png)

    async def test_retries_are_bounded(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url)
            return httpx.Response(404)

        with self.assertRaises(DownloadFailed) as ctx:
            await self.fetch(handler, download_retries=1)

        self.assertEqual(len(calls), 2)
        self.assertEqual(ctx.exception.url, "https://example.com/logo.png")
        self.assertIn("404", ctx.exception.reason)

    async def test_network_errors_become_download_failed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with self.assertRaises(DownloadFailed) as ctx:
            await self.fetch(handler, download_retries=0)
        self.assertIn("timed out", ctx.exception.reason)

    async def test_declared_oversized_payload_is_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"\x89PNG" + b"\x00" * 5000)

        with self.assertRaises(DownloadFailed) as ctx:
            await self.fetch(handler, download_retries=0, max_download_bytes=1000)
        self.assertIn("too large", ctx.exception.reason)

    async def test_streamed_oversized_payload_is_cut_off(self):
        chunks_sent = []

        async def body():
            for _ in range(100):
                chunks_sent.append(1)
                yield b"\x00" * 512

        def handler(request: httpx.Request) -> httpx.Response:
            # No Content-Length: the limit has to be enforced while streaming
            return httpx.Response(200, content=body())

        with self.assertRaises(DownloadFailed) as ctx:
            await self.fetch(handler, download_retries=0, max_download_bytes=2048)

        self.assertIn("exceeds", ctx.exception.reason)
        self.assertLess(len(chunks_sent), 100)

    async def test_tiny_payload_is_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"GIF89a")

        with self.assertRaises(DownloadFailed) as ctx:
            await self.fetch(handler, download_retries=0)
        self.assertIn("too small", ctx.exception.reason)

    async def test_small_dimensions_are_rejected(self):
        png = make_png((10, 10))

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=png)

        with self.assertRaises(DownloadFailed) as ctx:
            await self.fetch(handler, min_payload_bytes=0)
        self.assertIn("10x10", ctx.exception.reason)

    async def test_redirects_are_followed(self):
        png = make_png()

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/logo.png":
                return httpx.Response(301, headers={"Location": "/static/logo.png"})
            return httpx.Response(200, content=png)

        artifact = await self.fetch(handler)
        self.assertEqual(artifact.data, png)
        # The artifact keeps the candidate URL it was asked for
        self.assertEqual(artifact.url, "https://example.com/logo.png")

    async def test_redirect_loops_are_bounded(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url)
            return httpx.Response(302, headers={"Location": f"/hop{len(calls)}.png"})

        with self.assertRaises(DownloadFailed) as ctx:
            await self.fetch(handler, download_retries=0, max_redirects=3)

        self.assertIn("Too many redirects", ctx.exception.reason)
        self.assertEqual(len(calls), 4)

    async def test_unknown_payload_keeps_url_guess(self):
        data = b"<html>" + b"x" * 200

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=data)

        artifact = await self.fetch(handler, url="https://example.com/brand.webp")
        self.assertEqual(artifact.format, "webp")
        self.assertIsNone(artifact.width)


if __name__ == "__main__":
    unittest.main()

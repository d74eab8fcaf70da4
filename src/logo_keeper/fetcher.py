"""Bounded, retrying image downloads."""

import logging
from urllib.parse import urljoin, urlparse

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from .config import Settings
from .errors import DownloadFailed, NormalizationFailed
from .models import ImageArtifact
from .normalizer import ImageNormalizer


logger = logging.getLogger(__name__)


class RetryableDownloadError(Exception):
    """Raised for responses that should trigger another attempt."""


class ImageFetcher:
    """Downloads a single candidate image with size, timeout and retry limits."""

    # Headers resembling a browser image request
    IMAGE_HEADERS: dict[str, str] = {
        "User-Agent": (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36"
        ),
        "Accept": "image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "DNT": "1",
        "Sec-Fetch-Dest": "image",
        "Sec-Fetch-Mode": "no-cors",
        "Sec-Fetch-Site": "cross-site",
    }

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: Settings,
        normalizer: ImageNormalizer | None = None,
    ):
        self.client = client
        self.settings = settings
        self.normalizer = normalizer or ImageNormalizer(settings.max_dimension)

    async def fetch(self, url: str) -> ImageArtifact:
        """Download url and return the raw artifact.

        Network errors, non-200 responses and tiny payloads are retried with a
        linear backoff. Raises DownloadFailed once retries are exhausted or the
        image is too small to be a usable logo.
        """
        delay = self.settings.retry_delay_seconds
        retryer = AsyncRetrying(
            stop=stop_after_attempt(self.settings.download_retries + 1),
            wait=wait_incrementing(start=delay, increment=delay),
            retry=retry_if_exception_type(Exception),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )

        try:
            async for attempt in retryer:
                with attempt:
                    data = await self._download(url)
        except Exception as e:
            raise DownloadFailed(url, str(e) or type(e).__name__) from e

        return self._to_artifact(url, data)

    async def _download(self, url: str) -> bytes:
        """One GET of url, following a bounded number of redirects."""
        current = url
        for _ in range(self.settings.max_redirects + 1):
            headers = dict(self.IMAGE_HEADERS)
            headers["Referer"] = f"https://{urlparse(current).hostname}/"

            async with self.client.stream(
                "GET",
                current,
                headers=headers,
                follow_redirects=False,
                timeout=httpx.Timeout(self.settings.http_timeout_seconds),
            ) as response:
                if response.is_redirect:
                    location = response.headers.get("Location", "")
                    if not location:
                        raise RetryableDownloadError("Redirect without location")
                    current = urljoin(str(response.url), location)
                    logger.debug(f"Following redirect {url} -> {current}")
                    continue

                if response.status_code != 200:
                    raise RetryableDownloadError(f"HTTP {response.status_code}")

                declared = response.headers.get("Content-Length")
                if declared and declared.isdigit():
                    if int(declared) > self.settings.max_download_bytes:
                        raise RetryableDownloadError(
                            f"Payload too large: {declared} bytes"
                        )

                buffer = bytearray()
                async for chunk in response.aiter_bytes():
                    buffer.extend(chunk)
                    if len(buffer) > self.settings.max_download_bytes:
                        raise RetryableDownloadError(
                            f"Payload exceeds {self.settings.max_download_bytes} bytes"
                        )

            if len(buffer) < self.settings.min_payload_bytes:
                raise RetryableDownloadError(f"Image too small: {len(buffer)} bytes")
            return bytes(buffer)

        raise RetryableDownloadError(
            f"Too many redirects (>{self.settings.max_redirects})"
        )

    def _to_artifact(self, url: str, data: bytes) -> ImageArtifact:
        """Probe the payload and reject images below the minimum dimension."""
        try:
            fmt, width, height = self.normalizer.probe(data)
        except NormalizationFailed:
            # Unknown container; normalization decides what to do with it
            fmt = self.normalizer.detect_format(data, url)
            width = height = None

        minimum = self.settings.min_dimension
        if width is not None and height is not None:
            if width < minimum or height < minimum:
                logger.debug(f"Rejecting {url} - too small: {width}x{height}")
                raise DownloadFailed(url, f"Image dimensions too small: {width}x{height}")

        logger.debug(f"Downloaded {url}: {fmt} {width}x{height}, {len(data)} bytes")
        return ImageArtifact(url, data, fmt, len(data), width, height)

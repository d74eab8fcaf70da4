"""Logo extraction strategies that probe fixed URL lists."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import NamedTuple

from .errors import DownloadFailed
from .fetcher import ImageFetcher
from .models import ImageArtifact


logger = logging.getLogger(__name__)

DEADLINE_EXCEEDED = "deadline exceeded"


class Attempt(NamedTuple):
    url: str
    success: bool
    error: str | None = None


class AttemptLog:
    """Ordered record of every URL tried during one extraction run."""

    def __init__(self):
        self.attempts: list[Attempt] = []

    def success(self, url: str) -> None:
        self.attempts.append(Attempt(url, True))

    def failure(self, url: str, error: str) -> None:
        self.attempts.append(Attempt(url, False, error))

    @property
    def urls(self) -> list[str]:
        return [attempt.url for attempt in self.attempts]

    def __len__(self) -> int:
        return len(self.attempts)


class Strategy(ABC):
    """Base strategy: try candidate URLs in order until one downloads."""

    name: str = "strategy"

    def __init__(self, fetcher: ImageFetcher):
        self.fetcher = fetcher

    @abstractmethod
    async def candidate_urls(self, domain: str, attempts: AttemptLog) -> list[str]:
        """URLs to try, in order; may record attempts of its own."""

    async def extract(self, domain: str, attempts: AttemptLog) -> ImageArtifact | None:
        """Return the first candidate that downloads and validates, else None."""
        for url in await self.candidate_urls(domain, attempts):
            try:
                artifact = await self.fetcher.fetch(url)
            except DownloadFailed as e:
                logger.debug(f"[{self.name}] {e}")
                attempts.failure(url, e.reason or str(e))
                continue
            except asyncio.CancelledError:
                attempts.failure(url, DEADLINE_EXCEEDED)
                raise

            attempts.success(url)
            logger.info(f"[{self.name}] Logo found for {domain}: {url}")
            return artifact
        return None


class ThirdPartyServices(Strategy):
    """Ask public logo lookup services for the domain's logo."""

    name = "third-party"

    def __init__(self, fetcher: ImageFetcher, templates: list[str]):
        super().__init__(fetcher)
        self.templates = templates

    async def candidate_urls(self, domain: str, attempts: AttemptLog) -> list[str]:
        return [template.format(domain=domain) for template in self.templates]


class FaviconProbe(Strategy):
    """Probe the conventional favicon and touch-icon locations."""

    name = "favicon"

    FAVICON_LOCATIONS: list[str] = [
        "https://{domain}/favicon.ico",
        "https://www.{domain}/favicon.ico",
        "https://{domain}/apple-touch-icon.png",
        "https://{domain}/apple-touch-icon-precomposed.png",
    ]

    async def candidate_urls(self, domain: str, attempts: AttemptLog) -> list[str]:
        return [location.format(domain=domain) for location in self.FAVICON_LOCATIONS]


class CommonPaths(Strategy):
    """Guess well-known logo file locations on the site."""

    name = "common-paths"

    COMMON_PATHS: list[str] = [
        "/logo.png",
        "/logo.svg",
        "/assets/logo.png",
        "/assets/images/logo.png",
        "/static/logo.png",
        "/images/logo.png",
        "/img/logo.png",
    ]

    async def candidate_urls(self, domain: str, attempts: AttemptLog) -> list[str]:
        return [f"https://{domain}{path}" for path in self.COMMON_PATHS]

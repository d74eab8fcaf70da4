"""Homepage scraping strategy: parse HTML, score embedded logo candidates."""

import asyncio
import logging
from typing import NamedTuple

import httpx
from selectolax.parser import HTMLParser, Node

from .config import Settings
from .fetcher import ImageFetcher
from .scoring import ScoringEngine, get_scoring_engine
from .strategies import DEADLINE_EXCEEDED, AttemptLog, Strategy


logger = logging.getLogger(__name__)


class Candidate(NamedTuple):
    """An image URL discovered in a page, with its relevance score."""

    url: str
    context: str
    score: int = 0
    rule_details: tuple = ()


class WebpageScraper(Strategy):
    """Fetch the domain's homepage and try the most logo-like images on it."""

    name = "webpage"

    # (selector, attribute, context) checked after the img keyword scan
    LOGO_SELECTORS: list[tuple[str, str, str]] = [
        (".logo img", "src", "container"),
        (".header-logo img", "src", "container"),
        (".navbar-brand img", "src", "container"),
        ('link[rel="icon"]', "href", "favicon"),
        ('link[rel="shortcut icon"]', "href", "favicon"),
        ('link[rel="apple-touch-icon"]', "href", "apple-touch"),
        ('meta[property="og:image"]', "content", "social"),
    ]

    # img attributes searched for the 'logo' keyword, in priority order
    KEYWORD_ATTRIBUTES: list[str] = ["alt", "src", "class", "id"]

    SUPPORTED_EXTENSIONS: list[str] = ["png", "jpg", "jpeg", "gif", "svg", "webp", "ico"]

    # Headers resembling a browser navigation, to reduce bot blocking
    PAGE_HEADERS: dict[str, str] = {
        "User-Agent": (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36"
        ),
        "Accept": (
            "text/html,application/xhtml+xml,application/xml;q=0.9,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "DNT": "1",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Cache-Control": "max-age=0",
    }

    def __init__(
        self,
        fetcher: ImageFetcher,
        client: httpx.AsyncClient,
        settings: Settings,
        scoring_engine: ScoringEngine | None = None,
    ):
        super().__init__(fetcher)
        self.client = client
        self.settings = settings
        self.scoring_engine = scoring_engine or get_scoring_engine()

    async def candidate_urls(self, domain: str, attempts: AttemptLog) -> list[str]:
        page_url = f"https://{domain}/"
        html = await self._fetch_page(page_url, attempts)
        if html is None:
            return []

        candidates = self.rank_candidates(self.find_candidates(html, domain))
        logger.info(f"Found {len(candidates)} potential logos on {page_url}")
        for i, candidate in enumerate(candidates, 1):
            logger.debug(f"  {i}. {candidate.url} (score: {candidate.score})")
            for rule_label, contribution in candidate.rule_details:
                logger.debug(f"       {contribution:+d} {rule_label}")
        return [candidate.url for candidate in candidates]

    async def _fetch_page(self, page_url: str, attempts: AttemptLog) -> str | None:
        """GET the homepage; failures are recorded and yield None."""
        try:
            response = await self.client.get(
                page_url,
                headers=self.PAGE_HEADERS,
                follow_redirects=True,
                timeout=httpx.Timeout(self.settings.http_timeout_seconds),
            )
            if not 200 <= response.status_code < 400:
                raise httpx.HTTPStatusError(
                    f"HTTP {response.status_code}",
                    request=response.request,
                    response=response,
                )
            return response.text

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 403:
                logger.info(f"Access denied for {page_url} (403) - site blocks automated requests")
            elif status == 503:
                logger.info(f"Service unavailable for {page_url} (503) - likely behind protection")
            else:
                logger.info(f"Failed to fetch webpage {page_url}: HTTP {status}")
            attempts.failure(page_url, f"HTTP {status}")
        except httpx.HTTPError as e:
            logger.info(f"Failed to fetch webpage {page_url}: {e}")
            attempts.failure(page_url, str(e) or type(e).__name__)
        except asyncio.CancelledError:
            attempts.failure(page_url, DEADLINE_EXCEEDED)
            raise
        return None

    def find_candidates(self, html_content: str, domain: str) -> list[Candidate]:
        """Collect unique, supported image URLs from logo-indicative markup."""
        found: dict[str, Candidate] = {}
        tree = HTMLParser(html_content)

        def add(raw_url: str | None, context: str) -> None:
            if not raw_url:
                return
            raw_url = raw_url.strip()
            if not raw_url or raw_url.startswith("data:"):
                return
            url = self.resolve_url(raw_url, domain)
            if self.is_valid_image_url(url) and url not in found:
                found[url] = Candidate(url, context)
                logger.debug(f"Found {context} candidate: {url}")

        images = tree.css("img")
        for attribute in self.KEYWORD_ATTRIBUTES:
            for img in images:
                if self._has_logo_keyword(img, attribute):
                    add(img.attributes.get("src"), "img")

        for selector, attribute, context in self.LOGO_SELECTORS:
            for element in tree.css(selector):
                add(element.attributes.get(attribute), context)

        return list(found.values())

    def rank_candidates(self, candidates: list[Candidate]) -> list[Candidate]:
        """Score candidates; highest first, discovery order breaks ties."""
        scored = []
        for candidate in candidates:
            score, rule_details = self.scoring_engine.calculate_score(
                url=candidate.url, context=candidate.context
            )
            scored.append(candidate._replace(score=score, rule_details=tuple(rule_details)))
        return sorted(scored, key=lambda c: c.score, reverse=True)

    @staticmethod
    def _has_logo_keyword(img: Node, attribute: str) -> bool:
        value = img.attributes.get(attribute) or ""
        return "logo" in value.lower()

    @staticmethod
    def resolve_url(url: str, domain: str) -> str:
        """Make a page-relative, root-relative or scheme-relative URL absolute."""
        if url.startswith("http"):
            return url
        if url.startswith("//"):
            return f"https:{url}"
        if url.startswith("/"):
            return f"https://{domain}{url}"
        return f"https://{domain}/{url}"

    @classmethod
    def is_valid_image_url(cls, url: str) -> bool:
        lowered = url.lower()
        return any(
            f".{ext}" in lowered or f"format={ext}" in lowered
            for ext in cls.SUPPORTED_EXTENSIONS
        )

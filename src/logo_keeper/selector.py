"""Ordered strategy selection for a domain."""

import logging
from typing import Callable

import httpx

from .config import Settings
from .domain import matches_domain
from .fetcher import ImageFetcher
from .scraper import WebpageScraper
from .scoring import ScoringEngine
from .strategies import CommonPaths, FaviconProbe, Strategy, ThirdPartyServices


logger = logging.getLogger(__name__)

Predicate = Callable[[str], bool]
StrategyTable = list[tuple[Strategy, Predicate]]


def always(domain: str) -> bool:
    return True


def outside_blocklist(blocklist: list[str]) -> Predicate:
    """Predicate excluding domains known to block automated page fetches."""

    def predicate(domain: str) -> bool:
        return not matches_domain(domain, blocklist)

    return predicate


def default_strategy_table(
    fetcher: ImageFetcher,
    client: httpx.AsyncClient,
    settings: Settings,
    scoring_engine: ScoringEngine | None = None,
) -> StrategyTable:
    """Strategies in the order they are tried, each with its inclusion rule."""
    return [
        (ThirdPartyServices(fetcher, settings.third_party_services), always),
        (FaviconProbe(fetcher), always),
        (
            WebpageScraper(fetcher, client, settings, scoring_engine),
            outside_blocklist(settings.scraping_blocklist),
        ),
        (CommonPaths(fetcher), always),
    ]


def select_strategies(domain: str, table: StrategyTable) -> list[Strategy]:
    """Evaluate the table once for domain, preserving its order."""
    selected = [strategy for strategy, include in table if include(domain)]
    skipped = [strategy.name for strategy, include in table if strategy not in selected]
    if skipped:
        logger.debug(f"Skipping strategies for {domain}: {', '.join(skipped)}")
    return selected

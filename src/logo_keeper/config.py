"""Runtime configuration.

All settings are read from the environment (prefix ``LOGO_KEEPER_``) or from a
local ``.env`` file. List-valued settings are given as JSON arrays, e.g.
``LOGO_KEEPER_SCRAPING_BLOCKLIST='["visa.com"]'``.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SCRAPING_BLOCKLIST: list[str] = [
    "mastercard.com",
    "visa.com",
    "amex.com",
    "americanexpress.com",
    "jpmorgan.com",
    "wellsfargo.com",
    "bankofamerica.com",
    "cloudflare.com",
    "fastly.com",
]

DEFAULT_THIRD_PARTY_SERVICES: list[str] = [
    "https://logo.clearbit.com/{domain}",
    "https://unavatar.io/{domain}",
    "https://logo.uplead.com/{domain}",
    "https://logo.devapi.ai/{domain}",
]


class Settings(BaseSettings):
    """Central configuration for the extraction pipeline and its backends."""

    model_config = SettingsConfigDict(
        env_prefix="LOGO_KEEPER_",
        extra="ignore",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Outbound HTTP
    http_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Connect/read timeout for page and image requests.",
    )
    upload_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for uploads to the image host.",
    )
    max_download_bytes: int = Field(
        default=5 * 1024 * 1024,
        gt=0,
        description="Hard cap on a single image payload.",
    )
    min_payload_bytes: int = Field(
        default=100,
        ge=0,
        description="Payloads smaller than this are treated as failed downloads.",
    )
    min_dimension: int = Field(
        default=16,
        ge=1,
        description="Images narrower or shorter than this are rejected.",
    )
    max_dimension: int = Field(
        default=512,
        ge=16,
        description="Bounding box edge for normalized raster logos.",
    )
    download_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Additional attempts per candidate URL after the first.",
    )
    retry_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Linear backoff step: retry n waits n times this value.",
    )
    max_redirects: int = Field(
        default=3,
        ge=0,
        description="Redirects followed when downloading an image.",
    )
    page_max_redirects: int = Field(
        default=5,
        ge=0,
        description="Redirects followed when fetching a homepage for scraping.",
    )
    request_deadline_seconds: float = Field(
        default=60.0,
        gt=0,
        description="End-to-end budget for one extraction request.",
    )

    # Strategies
    scraping_blocklist: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SCRAPING_BLOCKLIST),
        description="Domains (and their subdomains) never scraped directly.",
    )
    third_party_services: list[str] = Field(
        default_factory=lambda: list(DEFAULT_THIRD_PARTY_SERVICES),
        description="Logo lookup URL templates, '{domain}' is substituted.",
    )

    # Remote image host
    imgbb_api_key: str | None = Field(
        default=None,
        description="ImgBB API key; without it every logo is stored inline.",
    )
    imgbb_base_url: str = Field(
        default="https://api.imgbb.com/1",
        min_length=8,
        description="ImgBB API base URL.",
    )

    # Persistence
    database_backend: Literal["sqlite", "postgres"] = Field(
        default="sqlite",
        description="Which repository implementation to use.",
    )
    sqlite_path: Path = Field(
        default=Path("data/logos.db"),
        description="Database file for the SQLite backend.",
    )
    database_url: str | None = Field(
        default=None,
        description="PostgreSQL DSN for the postgres backend.",
    )
    database_pool_min: int = Field(default=2, ge=1)
    database_pool_max: int = Field(default=10, ge=1)

"""Top-level package for logokeeper.

Expose primary classes/functions for convenient imports:
    from logo_keeper import LogoService, Settings, normalize_domain
"""

from importlib.metadata import version, PackageNotFoundError

from .config import Settings
from .domain import normalize_domain
from .errors import (
    DownloadFailed,
    InvalidDomain,
    LogoKeeperError,
    NoLogoFound,
    NotFound,
    NormalizationFailed,
    PersistenceConflict,
    UploadFailed,
)
from .models import AttemptRecord, ImageArtifact, LogoEntity
from .scoring import get_scoring_engine
from .service import LogoService

__all__ = [
    "AttemptRecord",
    "DownloadFailed",
    "ImageArtifact",
    "InvalidDomain",
    "LogoEntity",
    "LogoKeeperError",
    "LogoService",
    "NoLogoFound",
    "NormalizationFailed",
    "NotFound",
    "PersistenceConflict",
    "Settings",
    "UploadFailed",
    "get_scoring_engine",
    "normalize_domain",
]

try:
    __version__ = version("logokeeper")
except PackageNotFoundError:  # pragma: no cover - during editable/dev installs
    __version__ = "0.0.0"

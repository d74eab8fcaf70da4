"""Exception hierarchy for the logo pipeline."""


class LogoKeeperError(Exception):
    """Base class for all logokeeper errors."""


class InvalidDomain(LogoKeeperError, ValueError):
    """Raised when a domain string cannot be normalized."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"Invalid domain: {raw!r}")
        self.raw = raw


class DownloadFailed(LogoKeeperError):
    """Raised when a candidate URL could not be downloaded after all retries."""

    def __init__(self, url: str, reason: str = "") -> None:
        message = f"Failed to download {url}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.url = url
        self.reason = reason


class NoLogoFound(LogoKeeperError):
    """Raised when every extraction strategy is exhausted."""

    def __init__(self, domain: str) -> None:
        super().__init__(f"No logo found for domain: {domain}")
        self.domain = domain


class UploadFailed(LogoKeeperError):
    """Raised when the remote image host rejects or cannot receive an upload."""


class NormalizationFailed(LogoKeeperError):
    """Raised when an image cannot be decoded or converted."""


class NotFound(LogoKeeperError):
    """Raised when a requested logo entity does not exist."""


class PersistenceConflict(LogoKeeperError):
    """Raised when a logo for the same domain was stored concurrently."""

    def __init__(self, domain: str) -> None:
        super().__init__(f"A logo for {domain} already exists")
        self.domain = domain

"""Domain name canonicalization."""

import re

from .errors import InvalidDomain


SCHEME_REGEX: re.Pattern[str] = re.compile(r"^[a-z][a-z0-9+.-]*://", flags=re.IGNORECASE)

HOSTNAME_REGEX: re.Pattern[str] = re.compile(
    r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,}$"
)


def normalize_domain(raw: str) -> str:
    """Reduce a URL or host string to a bare lowercase hostname.

    ``"https://www.Example.com/"`` and ``"EXAMPLE.COM:8080/path"`` both become
    ``"example.com"``. Raises InvalidDomain if nothing hostname-like remains.
    """
    if raw is None:
        raise InvalidDomain("")

    value = raw.strip().lower()
    value = SCHEME_REGEX.sub("", value)
    while value.startswith("www."):
        value = value[4:]

    # Cut at the first path, query or fragment delimiter, then drop the port
    value = re.split(r"[/?#]", value, maxsplit=1)[0]
    value = value.split(":", 1)[0].rstrip(".")

    if not value or not HOSTNAME_REGEX.match(value):
        raise InvalidDomain(raw)
    return value


def display_name(domain: str) -> str:
    """Default company name for a domain: its first label, capitalized."""
    label = normalize_domain(domain).split(".")[0]
    return label[:1].upper() + label[1:]


def matches_domain(domain: str, patterns: list[str]) -> bool:
    """True if domain equals, or is a subdomain of, any of the patterns."""
    for pattern in patterns:
        pattern = pattern.strip().lower()
        if pattern and (domain == pattern or domain.endswith(f".{pattern}")):
            return True
    return False

"""URL-based penalty rules for logo candidate ranking."""

import re


SIZE_REGEX: re.Pattern[str] = re.compile(
    r"(?P<width>\d{1,4})x(?P<height>\d{1,4})", flags=re.IGNORECASE
)


def tiny_dimensions_in_name(url: str, **kwargs) -> bool:
    """Apply penalty for URLs encoding an icon-sized width such as 16x16"""
    match = SIZE_REGEX.search(url)
    if not match:
        return False
    return int(match.group("width")) < 50

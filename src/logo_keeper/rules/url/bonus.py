"""URL-based bonus rules for logo candidate ranking."""


def logo_in_url(url: str, **kwargs) -> bool:
    """Award bonus for 'logo' anywhere in the URL"""
    return "logo" in url.lower()


def vector_format(url: str, **kwargs) -> bool:
    """Award bonus for SVG candidates"""
    return ".svg" in url.lower()


def png_format(url: str, **kwargs) -> bool:
    """Award bonus for PNG candidates"""
    return ".png" in url.lower()


def jpeg_format(url: str, **kwargs) -> bool:
    """Award bonus for JPEG candidates"""
    lowered = url.lower()
    return ".jpg" in lowered or ".jpeg" in lowered


def assets_directory(url: str, **kwargs) -> bool:
    """Award bonus for files served from an assets directory"""
    return "/assets/" in url.lower()


def images_directory(url: str, **kwargs) -> bool:
    """Award bonus for files served from an images directory"""
    return "/images/" in url.lower()


def static_directory(url: str, **kwargs) -> bool:
    """Award bonus for files served from a static directory"""
    return "/static/" in url.lower()

"""Format detection and canonicalization of downloaded logos."""

import logging
from io import BytesIO
from urllib.parse import urlparse

from PIL import Image

from .errors import NormalizationFailed
from .models import ImageArtifact


logger = logging.getLogger(__name__)


# Pillow format names mapped onto stored format tags
PIL_FORMATS: dict[str, str] = {
    "PNG": "png",
    "JPEG": "jpeg",
    "MPO": "jpeg",
    "GIF": "gif",
    "WEBP": "webp",
    "ICO": "ico",
    "BMP": "bmp",
    "DIB": "bmp",
    "TIFF": "tiff",
}

# URL extensions in lookup order
EXTENSION_FORMATS: list[tuple[str, str]] = [
    ("svg", "svg"),
    ("png", "png"),
    ("jpeg", "jpeg"),
    ("jpg", "jpeg"),
    ("gif", "gif"),
    ("webp", "webp"),
    ("ico", "ico"),
    ("bmp", "bmp"),
    ("tiff", "tiff"),
    ("tif", "tiff"),
]

# Modes PNG can store directly
PNG_MODES = {"1", "L", "LA", "I", "P", "RGB", "RGBA"}


def looks_like_svg(data: bytes) -> bool:
    snippet = data[:1024].lstrip().lower()
    return snippet.startswith(b"<svg") or (
        snippet.startswith(b"<?xml") and b"<svg" in snippet
    )


def format_from_signature(data: bytes) -> str | None:
    """Identify an image container from its leading magic bytes."""
    if len(data) < 4:
        return None
    if data.startswith(b"\x89PNG"):
        return "png"
    if data.startswith(b"\xff\xd8\xff"):
        return "jpeg"
    if data.startswith(b"\x00\x00\x01\x00"):
        return "ico"
    if data.startswith(b"GIF8"):
        return "gif"
    if data.startswith(b"RIFF") and data[8:12] == b"WEBP":
        return "webp"
    if data.startswith(b"BM"):
        return "bmp"
    if data.startswith((b"II*\x00", b"MM\x00*")):
        return "tiff"
    if looks_like_svg(data):
        return "svg"
    return None


def format_from_url(url: str) -> str | None:
    """Guess a format from the URL's extension or a format= query parameter."""
    lowered = url.lower()
    path = urlparse(lowered).path
    for ext, fmt in EXTENSION_FORMATS:
        if path.endswith(f".{ext}"):
            return fmt
    for ext, fmt in EXTENSION_FORMATS:
        if f".{ext}" in lowered or f"format={ext}" in lowered:
            return fmt
    return None


class ImageNormalizer:
    """Converts logos into PNG bounded by a square box; SVG passes through."""

    CANONICAL_FORMAT = "png"

    def __init__(self, max_dimension: int = 512):
        self.max_dimension = max_dimension

    def probe(self, data: bytes) -> tuple[str, int | None, int | None]:
        """Return (format, width, height); vector images have no dimensions."""
        if looks_like_svg(data):
            return "svg", None, None
        try:
            with Image.open(BytesIO(data)) as img:
                fmt = PIL_FORMATS.get(img.format or "", "unknown")
                width, height = img.size
        except Exception as e:
            raise NormalizationFailed(f"Unrecognized image data: {e}") from e
        return fmt, width, height

    def detect_format(self, data: bytes, url: str = "") -> str:
        """Best-effort format: metadata probe, then magic bytes, then URL."""
        try:
            fmt, _, _ = self.probe(data)
            if fmt != "unknown":
                return fmt
        except NormalizationFailed:
            pass
        return format_from_signature(data) or format_from_url(url) or "unknown"

    def normalize(self, artifact: ImageArtifact) -> ImageArtifact:
        """Canonicalize an artifact without ever failing.

        PNGs already inside the bounding box and all SVGs are kept
        byte-for-byte. Everything else is reduced to fit and re-encoded as PNG.
        Undecodable payloads are returned as-is with a guessed format.
        """
        if artifact.format == "svg" or looks_like_svg(artifact.data):
            return artifact._replace(format="svg", width=None, height=None)

        try:
            with Image.open(BytesIO(artifact.data)) as img:
                fmt = PIL_FORMATS.get(img.format or "", "unknown")
                frame = self._largest_frame(img) if fmt == "ico" else img
                width, height = frame.size

                if (
                    fmt == self.CANONICAL_FORMAT
                    and width <= self.max_dimension
                    and height <= self.max_dimension
                ):
                    return artifact._replace(format=fmt, width=width, height=height)

                data, width, height = self._encode_png(frame)
        except Exception as e:
            guess = self.detect_format(artifact.data, artifact.url)
            logger.warning(
                f"{NormalizationFailed.__name__} for {artifact.url}, "
                f"keeping raw {guess} payload: {e}"
            )
            return artifact._replace(format=guess, width=None, height=None)

        logger.debug(
            f"Normalized {artifact.url}: {artifact.format} -> png {width}x{height}"
        )
        return ImageArtifact(artifact.url, data, "png", len(data), width, height)

    def convert_to_png(self, data: bytes, fmt: str) -> tuple[bytes, int, int]:
        """Re-encode a raster payload as a bounded PNG, using the largest ICO frame.

        Raises NormalizationFailed when the payload cannot be decoded.
        """
        try:
            with Image.open(BytesIO(data)) as img:
                frame = self._largest_frame(img) if img.format == "ICO" else img
                return self._encode_png(frame)
        except Exception as e:
            raise NormalizationFailed(f"Failed to convert {fmt} to PNG: {e}") from e

    @staticmethod
    def _largest_frame(img: Image.Image) -> Image.Image:
        """Pick the embedded bitmap with the largest pixel area from an ICO."""
        sizes = img.ico.sizes()
        if not sizes:
            raise NormalizationFailed("No images found in ICO file")
        largest = max(sizes, key=lambda size: size[0] * size[1])
        logger.debug(f"Selected ICO frame {largest[0]}x{largest[1]} of {sorted(sizes)}")
        return img.ico.getimage(largest)

    def _encode_png(self, img: Image.Image) -> tuple[bytes, int, int]:
        """Shrink to fit the bounding box (never enlarge) and encode as PNG."""
        img.load()
        if img.mode not in PNG_MODES:
            img = img.convert("RGBA")
        else:
            img = img.copy()

        img.thumbnail((self.max_dimension, self.max_dimension), Image.Resampling.LANCZOS)

        byte_arr = BytesIO()
        img.save(byte_arr, format="PNG")
        width, height = img.size
        return byte_arr.getvalue(), width, height

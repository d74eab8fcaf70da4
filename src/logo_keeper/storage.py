"""Remote image hosting with inline fallback."""

import base64
import logging
from typing import NamedTuple

import httpx

from .config import Settings
from .errors import DownloadFailed, NormalizationFailed, NotFound, UploadFailed
from .models import ImageArtifact, LogoEntity, RemoteReference, content_type_for
from .normalizer import ImageNormalizer


logger = logging.getLogger(__name__)


class StoredImage(NamedTuple):
    """Outcome of storing an artifact: exactly one of remote or inline is set."""

    format: str
    size: int
    width: int | None
    height: int | None
    remote: RemoteReference | None = None
    inline: bytes | None = None


class ImgBBStorage:
    """Uploads logos to ImgBB and resolves stored logos back to bytes."""

    # Formats the provider takes as-is
    ACCEPTED_FORMATS: frozenset[str] = frozenset({"png", "jpeg", "gif", "webp"})
    # Formats re-encoded to PNG before upload
    CONVERT_FORMATS: frozenset[str] = frozenset({"ico", "bmp", "tiff"})
    # Formats never uploaded; rasterizing would lose the vector original
    INLINE_FORMATS: frozenset[str] = frozenset({"svg"})

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: Settings,
        normalizer: ImageNormalizer | None = None,
    ):
        self.client = client
        self.settings = settings
        self.normalizer = normalizer or ImageNormalizer(settings.max_dimension)

    @property
    def enabled(self) -> bool:
        return bool(self.settings.imgbb_api_key)

    async def store(self, artifact: ImageArtifact, filename: str) -> StoredImage:
        """Upload the artifact, keeping it inline if the upload fails for any reason."""
        try:
            return await self.upload(artifact, filename)
        except UploadFailed as e:
            logger.warning(f"Cloud upload failed, using inline storage: {e}")
        except Exception as e:
            logger.warning(
                f"Unexpected error during cloud upload, using inline storage: "
                f"{type(e).__name__}: {e}"
            )

        return StoredImage(
            artifact.format,
            artifact.size,
            artifact.width,
            artifact.height,
            inline=artifact.data,
        )

    async def upload(self, artifact: ImageArtifact, filename: str) -> StoredImage:
        """Send the artifact to ImgBB, converting formats it does not accept.

        Raises UploadFailed on missing credentials, unsupported formats,
        conversion errors, transport errors or provider rejection.
        """
        if not self.enabled:
            raise UploadFailed("ImgBB API key not configured")

        data, fmt = artifact.data, artifact.format
        width, height = artifact.width, artifact.height

        if fmt in self.INLINE_FORMATS:
            raise UploadFailed(f"{fmt} is kept inline")
        if fmt in self.CONVERT_FORMATS:
            logger.info(f"Converting {fmt} to PNG for ImgBB upload...")
            try:
                data, width, height = self.normalizer.convert_to_png(data, fmt)
            except NormalizationFailed as e:
                raise UploadFailed(str(e)) from e
            fmt = "png"
            filename = filename.rsplit(".", 1)[0] + ".png"
        if fmt not in self.ACCEPTED_FORMATS:
            raise UploadFailed(f"Unsupported image format: {fmt}")
        if not data or len(data) > self.settings.max_download_bytes:
            raise UploadFailed(f"Invalid upload size: {len(data)} bytes")

        logger.info(f"Uploading to ImgBB: {filename} ({fmt}, {len(data)} bytes)")
        try:
            response = await self.client.post(
                f"{self.settings.imgbb_base_url}/upload",
                params={"key": self.settings.imgbb_api_key},
                data={"image": base64.b64encode(data).decode("ascii"), "name": filename},
                timeout=httpx.Timeout(self.settings.upload_timeout_seconds),
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise UploadFailed(f"Failed to upload to ImgBB: {e}") from e

        if (
            not isinstance(payload, dict)
            or not payload.get("success")
            or not isinstance(payload.get("data"), dict)
        ):
            raise UploadFailed(f"ImgBB upload failed: {payload}")

        info = payload["data"]
        try:
            reference = RemoteReference(
                id=str(info["id"]),
                url=info["url"],
                revoke_token=info.get("delete_url"),
                width=int(info.get("width") or width or 0) or None,
                height=int(info.get("height") or height or 0) or None,
                size=int(info.get("size") or len(data)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UploadFailed(f"Malformed ImgBB response: {e}") from e

        logger.info(f"ImgBB upload successful: {reference.url}")
        return StoredImage(
            fmt, reference.size, reference.width, reference.height, remote=reference
        )

    async def fetch(self, entity: LogoEntity) -> tuple[bytes, str]:
        """Return (bytes, content type) for whichever storage mode the entity uses."""
        if entity.uses_remote_storage:
            url = entity.remote_ref_url
            try:
                response = await self.client.get(
                    url, timeout=httpx.Timeout(self.settings.http_timeout_seconds)
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise DownloadFailed(url, str(e)) from e
            content_type = response.headers.get("Content-Type") or entity.content_type
            return response.content, content_type

        if entity.inline_binary is not None:
            return entity.inline_binary, content_type_for(entity.format)

        raise NotFound(f"No stored image for {entity.domain}")

    async def revoke(self, entity: LogoEntity) -> bool:
        """Best-effort removal of the remote copy through its revocation URL."""
        if not entity.remote_revoke_token:
            return False
        try:
            response = await self.client.get(
                entity.remote_revoke_token,
                timeout=httpx.Timeout(self.settings.http_timeout_seconds),
            )
        except httpx.HTTPError as e:
            logger.warning(f"ImgBB delete failed for {entity.domain}: {e}")
            return False
        return response.status_code < 400

    def describe(self) -> dict:
        return {
            "provider": "ImgBB" if self.enabled else "Inline",
            "upload": self.enabled,
            "accepted_formats": sorted(self.ACCEPTED_FORMATS),
            "converted_formats": sorted(self.CONVERT_FORMATS),
            "max_size": self.settings.max_download_bytes,
        }

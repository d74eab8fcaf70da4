"""Logo entities, attempt records and transient image artifacts."""

import base64
from datetime import datetime, timezone
from typing import Any, NamedTuple

from pydantic import BaseModel, Field, field_validator, model_validator


SUPPORTED_FORMATS: frozenset[str] = frozenset(
    {"png", "jpeg", "gif", "webp", "svg", "ico", "bmp", "tiff", "unknown"}
)

CONTENT_TYPES: dict[str, str] = {
    "png": "image/png",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "ico": "image/x-icon",
    "bmp": "image/bmp",
    "tiff": "image/tiff",
}

# Columns replaced together when a logo is (re-)extracted
IMAGE_FIELDS: tuple[str, ...] = (
    "original_source_url",
    "remote_ref_id",
    "remote_ref_url",
    "remote_revoke_token",
    "inline_binary",
    "format",
    "byte_size",
    "width",
    "height",
    "extracted_at",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def content_type_for(fmt: str | None) -> str:
    """MIME type for a stored format, PNG when unknown."""
    return CONTENT_TYPES.get((fmt or "").lower(), "image/png")


class ImageArtifact(NamedTuple):
    """A downloaded (and possibly normalized) image, not yet persisted."""

    url: str
    data: bytes
    format: str
    size: int
    width: int | None = None
    height: int | None = None


class RemoteReference(NamedTuple):
    """Handle to an image kept by the remote image host."""

    id: str
    url: str
    revoke_token: str | None
    width: int | None = None
    height: int | None = None
    size: int | None = None


class LogoEntity(BaseModel):
    """Persisted logo for one canonical domain."""

    id: int | None = None
    name: str = Field(default="", max_length=255)
    domain: str = Field(..., min_length=4, max_length=255)
    original_source_url: str | None = None
    remote_ref_id: str | None = None
    remote_ref_url: str | None = None
    remote_revoke_token: str | None = None
    inline_binary: bytes | None = None
    format: str | None = None
    byte_size: int | None = Field(default=None, ge=0)
    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)
    extracted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("format")
    @classmethod
    def _known_format(cls, value: str | None) -> str | None:
        if value is None:
            return value
        value = value.lower()
        if value not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported logo format: {value}")
        return value

    @model_validator(mode="after")
    def _consistent_image_fields(self) -> "LogoEntity":
        if (self.width is None) != (self.height is None):
            raise ValueError("width and height must both be set or both be empty")
        # A remote reference is authoritative; never keep a second copy inline
        if self.remote_ref_url and self.inline_binary is not None:
            self.inline_binary = None
        return self

    @classmethod
    def from_row(cls, row: Any) -> "LogoEntity":
        """Build an entity from a database row mapping."""
        data = dict(row)
        if isinstance(data.get("inline_binary"), memoryview):
            data["inline_binary"] = bytes(data["inline_binary"])
        return cls(**data)

    @property
    def uses_remote_storage(self) -> bool:
        return bool(self.remote_ref_url)

    @property
    def has_logo(self) -> bool:
        return self.uses_remote_storage or self.inline_binary is not None

    @property
    def content_type(self) -> str:
        return content_type_for(self.format)

    def image_fields(self) -> dict[str, Any]:
        """The image-derived columns, as replaced by a forced re-extraction."""
        return {name: getattr(self, name) for name in IMAGE_FIELDS}

    def data_url(self) -> str | None:
        """Inline payload as a ``data:`` URL for embedding, if stored inline."""
        if self.inline_binary is None or not self.format:
            return None
        encoded = base64.b64encode(self.inline_binary).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"

    def to_public_dict(self, include_binary: bool = False) -> dict[str, Any]:
        """API-shaped view; binary payload only on request."""
        data = self.model_dump(exclude={"inline_binary", "remote_revoke_token"})
        data["logo_url"] = self.remote_ref_url or self.original_source_url
        data["storage"] = "imgbb" if self.uses_remote_storage else "inline"
        if include_binary and self.inline_binary is not None:
            data["data_url"] = self.data_url()
        return data


class AttemptRecord(BaseModel):
    """One download attempt made while extracting a logo."""

    id: int | None = None
    entity_id: int | None = None
    attempted_url: str
    success: bool = False
    error_message: str | None = None
    attempted_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "AttemptRecord":
        data = dict(row)
        data["success"] = bool(data.get("success"))
        return cls(**data)

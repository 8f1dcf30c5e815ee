from __future__ import annotations

from pydantic import BaseModel


class ImageSize(BaseModel):
    width: int
    height: int


class ImageDescriptor(BaseModel):
    """A fetched image. Dimensions are ``None`` when the format was not recognised."""

    content_type: str
    data: bytes
    width: int | None = None
    height: int | None = None

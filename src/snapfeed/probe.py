"""Image header probe.

Reads pixel dimensions straight from the header bytes so the weather feed can
size its rotated embedding without decoding the image. Only GIF is
recognised; anything else yields ``None`` and callers use the unsized
rendering path.
"""

from __future__ import annotations

import struct

from snapfeed.models.image import ImageSize

GIF_SIGNATURES: frozenset[bytes] = frozenset({b"GIF87a", b"GIF89a"})

# Logical screen width and height follow the 6-byte signature.
_GIF_SCREEN = struct.Struct("<HH")
_GIF_HEADER_LEN = 6 + _GIF_SCREEN.size


def probe_dimensions(data: bytes) -> ImageSize | None:
    """Return the image width and height, or ``None`` if the format is unknown."""
    if len(data) < _GIF_HEADER_LEN or bytes(data[:6]) not in GIF_SIGNATURES:
        return None
    width, height = _GIF_SCREEN.unpack_from(data, 6)
    return ImageSize(width=width, height=height)

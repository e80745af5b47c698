"""YUV420p and encoded image decoding into RGBA pixel buffers."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeAlias

import numpy as np

from .errors import DecodeError, DecodeUnderrunError

logger = logging.getLogger(__name__)

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from numpy import ndarray as NDArray
else:
    NDArray: TypeAlias = Any

# BT.601 full-range coefficients
KR_V = 1.402
KG_U = 0.344136
KG_V = 0.714136
KB_U = 1.772
CHROMA_BIAS = 128

@dataclass(frozen=True)
class PlaneLayout:
    """Byte offsets of the Y, U and V planes inside a YUV420p buffer.

    Chroma rows are ``width // 2`` samples apart and each plane holds
    ``(width // 2) * (height // 2)`` samples, so the V plane starts at
    ``width*height*5/4`` for even sizes.
    """

    width: int
    height: int

    @property
    def chroma_width(self) -> int:
        return self.width // 2

    @property
    def chroma_height(self) -> int:
        return self.height // 2

    @property
    def luma_size(self) -> int:
        return self.width * self.height

    @property
    def chroma_size(self) -> int:
        return self.chroma_width * self.chroma_height

    @property
    def u_offset(self) -> int:
        return self.luma_size

    @property
    def v_offset(self) -> int:
        return self.luma_size + self.chroma_size

    def uv_offsets(self) -> NDArray:
        """Chroma offset of every pixel, shape ``(height, width)``."""
        rows = (np.arange(self.height) // 2)[:, None]
        cols = (np.arange(self.width) // 2)[None, :]
        return rows * self.chroma_width + cols

    @property
    def total(self) -> int:
        """Return one past the last byte the decoder reads.

        Equals ``width*height*3/2`` for even sizes. For odd sizes the last
        column and row reuse the floor-divided chroma index, which never
        reaches past ``ceil(width*height*3/2)``.
        """
        last_uv = ((self.height - 1) // 2) * self.chroma_width + (self.width - 1) // 2
        return self.v_offset + last_uv + 1


@dataclass(frozen=True)
class EncodedImage:
    """Pixels and natural size of a decoded PNG/JPEG/etc. image."""

    pixels: NDArray
    width: int
    height: int

def _check_dimensions(width: int, height: int) -> None:
    if width <= 0:
        msg = "The frame width must be a positive integer"
        raise ValueError(msg)
    if height <= 0:
        msg = "The frame height must be a positive integer"
        raise ValueError(msg)

def plane_layout(width: int, height: int) -> PlaneLayout:
    """Describe where each plane of a ``width`` x ``height`` frame lives."""
    _check_dimensions(width, height)
    return PlaneLayout(width=width, height=height)

def required_length(width: int, height: int) -> int:
    """Return the minimum buffer length for a ``width`` x ``height`` frame."""
    return plane_layout(width, height).total

def _as_byte_array(buffer: object) -> NDArray:
    if isinstance(buffer, np.ndarray):
        return np.ascontiguousarray(buffer, dtype=np.uint8).reshape(-1)
    return np.frombuffer(buffer, dtype=np.uint8)

def decode_yuv420p(
    buffer: object, width: int, height: int, *, pad: bool = False,
) -> NDArray:
    """Convert a planar YUV420p frame into a ``(height, width, 4)`` RGBA array.

    Parameters
    ----------
    buffer:
        Any bytes-like object (or 1-D ``uint8`` array) holding the Y plane
        followed by the U and V planes.
    width, height:
        Frame size in pixels.
    pad:
        When true, a short buffer is zero-padded to the required length
        instead of raising :class:`DecodeUnderrunError`.

    Channels are rounded to the nearest integer and clamped to ``[0, 255]``;
    alpha is always 255. The result is a fresh C-contiguous array whose bytes
    are laid out row-major as R, G, B, A.
    """
    layout = plane_layout(width, height)
    raw = _as_byte_array(buffer)
    if raw.size < layout.total:
        if not pad:
            raise DecodeUnderrunError(layout.total, int(raw.size))
        logger.debug(
            "Zero-padding %d byte buffer to %d bytes", raw.size, layout.total
        )
        padded = np.zeros(layout.total, dtype=np.uint8)
        padded[: raw.size] = raw
        raw = padded

    luma = raw[: layout.luma_size].reshape(height, width).astype(np.float64)

    # Each chroma sample covers a 2x2 block of luma samples.
    uv = layout.uv_offsets()
    u = raw[layout.u_offset + uv].astype(np.float64) - CHROMA_BIAS
    v = raw[layout.v_offset + uv].astype(np.float64) - CHROMA_BIAS

    rgba = np.empty((height, width, 4), dtype=np.uint8)
    for channel, value in enumerate((
        luma + KR_V * v,
        luma - KG_U * u - KG_V * v,
        luma + KB_U * u,
    )):
        rgba[..., channel] = np.clip(np.rint(value), 0, 255)
    rgba[..., 3] = 255
    return rgba

def is_encoded_image(mime_type: str | None) -> bool:
    """Return ``True`` when ``mime_type`` tags a standard encoded image."""
    return bool(mime_type) and "image/" in mime_type

def decode_encoded_image(data: bytes) -> EncodedImage:
    """Decode PNG/JPEG/... bytes with Pillow and report their natural size."""
    try:
        from PIL import Image, UnidentifiedImageError
    except ModuleNotFoundError as exc:  # pragma: no cover
        raise RuntimeError("Decoding encoded images requires Pillow") from exc

    try:
        with Image.open(io.BytesIO(data)) as img:
            rgba = img.convert("RGBA")
    except (UnidentifiedImageError, OSError) as exc:
        raise DecodeError(f"could not decode image data: {exc}") from exc

    width, height = rgba.size
    pixels = np.ascontiguousarray(np.asarray(rgba, dtype=np.uint8))
    return EncodedImage(pixels=pixels, width=width, height=height)

"""Texture pixel formats, conversion to and from RGBA, and PNG input/output."""

from __future__ import annotations

import sys
from array import array
from dataclasses import dataclass
from enum import IntEnum
from os import PathLike
from typing import Union

from PIL import Image as _PILImage

PathType = Union[str, "PathLike[str]"]


class TextureFormat(IntEnum):
    """Pixel formats found in texture data. All 16-bit formats are little-endian."""

    BGRA8888 = 1
    RGB565 = 3
    ARGB4444 = 5  # bytes: 0xGB 0xAR
    GRAY8 = 7
    # Used internally for decoded images; stored as 0xffff in 16-bit fields.
    RGBA8888 = 0xFFFF


_BYTES_PER_PIXEL = {
    TextureFormat.RGBA8888: 4,
    TextureFormat.BGRA8888: 4,
    TextureFormat.ARGB4444: 2,
    TextureFormat.RGB565: 2,
    TextureFormat.GRAY8: 1,
}


@dataclass
class Image:
    """A decoded image: raw pixel bytes plus dimensions and format."""

    data: bytes
    width: int
    height: int
    format: TextureFormat = TextureFormat.RGBA8888


def _as_format(fmt: int) -> TextureFormat:
    try:
        return TextureFormat(fmt)
    except ValueError:
        raise ValueError(f"unknown format: {fmt}") from None


def bytes_per_pixel(fmt: int) -> int:
    """Return the number of bytes one pixel takes in the given format."""
    return _BYTES_PER_PIXEL[_as_format(fmt)]


def _pixel_count(data: bytes, bpp: int, what: str) -> int:
    if len(data) % bpp:
        raise ValueError(
            f"{what} length {len(data)} is not a multiple of {bpp} bytes"
        )
    return len(data) // bpp


def _u16_le(values) -> bytes:
    packed = array("H", values)
    if sys.byteorder == "big":
        packed.byteswap()
    return packed.tobytes()


# (v + 8) // 17 rounds an 8-bit channel to 4 bits.
_TO_NIBBLE = bytes((v + 8) // 17 for v in range(256))
_LOW_NIBBLE_X17 = bytes((v & 0x0F) * 17 for v in range(256))
_HIGH_NIBBLE_X17 = bytes((v >> 4) * 17 for v in range(256))


def from_rgba(data: bytes, fmt: int) -> bytes:
    """Convert RGBA8888 pixel bytes (R, G, B, A order) into ``fmt``."""
    fmt = _as_format(fmt)
    data = bytes(data)
    _pixel_count(data, 4, "RGBA data")
    red, green, blue, alpha = (data[i::4] for i in range(4))

    if fmt is TextureFormat.GRAY8:
        return red
    if fmt is TextureFormat.BGRA8888:
        out = bytearray(data)
        out[0::4] = blue
        out[2::4] = red
        return bytes(out)
    if fmt is TextureFormat.ARGB4444:
        r4, g4, b4, a4 = (c.translate(_TO_NIBBLE) for c in (red, green, blue, alpha))
        out = bytearray(len(red) * 2)
        out[0::2] = bytes((g << 4) | b for g, b in zip(g4, b4))
        out[1::2] = bytes((a << 4) | r for a, r in zip(a4, r4))
        return bytes(out)
    if fmt is TextureFormat.RGB565:
        return _u16_le(
            ((r & 0xF8) << 8) | ((g & 0xFC) << 3) | (b >> 3)
            for r, g, b in zip(red, green, blue)
        )
    return data


def to_rgba(data: bytes, fmt: int) -> bytes:
    """Convert pixel bytes in ``fmt`` into RGBA8888 bytes (R, G, B, A order)."""
    fmt = _as_format(fmt)
    data = bytes(data)
    count = _pixel_count(data, _BYTES_PER_PIXEL[fmt], "pixel data")
    out = bytearray(count * 4)

    if fmt is TextureFormat.GRAY8:
        out[0::4] = data
        out[1::4] = data
        out[2::4] = data
        out[3::4] = b"\xff" * count
    elif fmt is TextureFormat.BGRA8888:
        out[:] = data
        out[0::4] = data[2::4]
        out[2::4] = data[0::4]
    elif fmt is TextureFormat.ARGB4444:
        low, high = data[0::2], data[1::2]
        out[0::4] = high.translate(_LOW_NIBBLE_X17)
        out[1::4] = low.translate(_HIGH_NIBBLE_X17)
        out[2::4] = low.translate(_LOW_NIBBLE_X17)
        out[3::4] = high.translate(_HIGH_NIBBLE_X17)
    elif fmt is TextureFormat.RGB565:
        # The low bits are replicated exactly as the file format's tools do:
        # red gets its lowest bit in three places, green in two, blue in one.
        for i, (low, high) in enumerate(zip(data[0::2], data[1::2])):
            word = low | (high << 8)
            r5 = word >> 11
            g6 = (word >> 5) & 0x3F
            b5 = word & 0x1F
            out[i * 4] = (r5 << 3) | ((r5 & 1) * 0x07)
            out[i * 4 + 1] = (g6 << 2) | ((g6 & 1) * 0x03)
            out[i * 4 + 2] = (b5 << 3) | (b5 & 1)
            out[i * 4 + 3] = 0xFF
    else:
        out[:] = data
    return bytes(out)


def read_png(path: PathType) -> Image:
    """Read a PNG file into an RGBA8888 image."""
    with _PILImage.open(path) as png:
        rgba = png.convert("RGBA")
        return Image(
            data=rgba.tobytes(),
            width=rgba.width,
            height=rgba.height,
            format=TextureFormat.RGBA8888,
        )


def write_png(path: PathType, image: Image) -> None:
    """Write an image as PNG: grayscale for GRAY8, RGBA for everything else."""
    mode = "L" if image.format == TextureFormat.GRAY8 else "RGBA"
    png = _PILImage.frombytes(mode, (image.width, image.height), bytes(image.data))
    png.save(path, format="PNG", compress_level=1)
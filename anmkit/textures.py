"""Assembling entry textures into whole images and writing images back."""

from __future__ import annotations

from os import PathLike
from typing import Iterator, Optional, Union

from .archive import Archive, Entry
from .pixels import Image, TextureFormat, bytes_per_pixel, from_rgba, to_rgba

PathType = Union[str, "PathLike[str]"]

THTX_HEADER_SIZE = 16

# Later formats overwrite earlier ones where entries overlap.
_EXTRACT_ORDER = (
    TextureFormat.GRAY8,
    TextureFormat.ARGB4444,
    TextureFormat.RGB565,
    TextureFormat.BGRA8888,
    TextureFormat.RGBA8888,
)
_REPLACE_ORDER = (
    TextureFormat.RGBA8888,
    TextureFormat.BGRA8888,
    TextureFormat.RGB565,
    TextureFormat.ARGB4444,
    TextureFormat.GRAY8,
)


class TextureError(ValueError):
    """Raised when an image does not fit the textures it should cover."""


def total_size(archive: Archive, name: str) -> tuple[int, int]:
    """Return the width and height of the image assembled from ``name``'s entries.

    The size is (0, 0) when no entry has that name or any of them has no data.
    """
    width = height = 0
    for entry in archive.entries_named(name):
        if not entry.header.has_data:
            return 0, 0
        width = max(width, entry.header.x + entry.thtx.width)
        height = max(height, entry.header.y + entry.thtx.height)
    return width, height


def _textured(archive: Archive, name: str, fmt: TextureFormat) -> Iterator[Entry]:
    for entry in archive.entries:
        if entry.header.has_data and entry.name == name and entry.thtx.format == fmt:
            yield entry


def extract_image(archive: Archive, name: str) -> Optional[Image]:
    """Assemble the RGBA image for ``name``; ``None`` if there is nothing to extract.

    Pixels not covered by any entry are left as 0xff bytes.
    """
    width, height = total_size(archive, name)
    if not width or not height:
        return None

    stride = width * 4
    canvas = bytearray(b"\xff") * (stride * height)
    for fmt in _EXTRACT_ORDER:
        bpp = bytes_per_pixel(fmt)
        for entry in _textured(archive, name, fmt):
            thtx, header = entry.thtx, entry.header
            needed = thtx.width * thtx.height * bpp
            if len(entry.data) < needed:
                raise TextureError(
                    f"{name}: texture data holds {len(entry.data)} bytes, "
                    f"{needed} needed"
                )
            rgba = to_rgba(bytes(entry.data[:needed]), fmt)
            row = thtx.width * 4
            for line in range(thtx.height):
                start = (header.y + line) * stride + header.x * 4
                canvas[start:start + row] = rgba[line * row:(line + 1) * row]
    return Image(bytes(canvas), width, height, TextureFormat.RGBA8888)


def _rgba_pixels(image: Image) -> bytes:
    if image.format == TextureFormat.RGBA8888:
        data = bytes(image.data)
    else:
        data = to_rgba(image.data, image.format)
    if len(data) != image.width * image.height * 4:
        raise TextureError(
            f"image data holds {len(data)} bytes for {image.width}x{image.height}"
        )
    return data


def _texture_rows(archive: Archive, name: str,
                  image: Image) -> Iterator[tuple[Entry, int, int, bytes]]:
    """Yield (entry, entry file offset, offset in texture data, row bytes)."""
    width, height = total_size(archive, name)
    if not width or not height:
        return
    if (image.width, image.height) != (width, height):
        raise TextureError(
            f"{name}: wrong image dimensions: {image.width}, {image.height} "
            f"instead of {width}, {height}"
        )
    rgba = _rgba_pixels(image)

    for fmt in _REPLACE_ORDER:
        bpp = bytes_per_pixel(fmt)
        stride = width * bpp
        converted: Optional[bytes] = None
        base = 0
        for entry in archive.entries:
            header, thtx = entry.header, entry.thtx
            if entry.name == name and thtx.format == fmt and header.has_data:
                if converted is None:
                    converted = from_rgba(rgba, fmt)
                row = thtx.width * bpp
                if thtx.height * row > thtx.size:
                    raise TextureError(
                        f"{name}: texture {thtx.width}x{thtx.height} does not "
                        f"fit in {thtx.size} bytes"
                    )
                for line in range(thtx.height):
                    start = (header.y + line) * stride + header.x * bpp
                    yield entry, base, line * row, converted[start:start + row]
            base += header.next_offset


def replace_image(archive: Archive, name: str, image: Image) -> int:
    """Write ``image`` into the texture data of ``name``'s entries in memory.

    Returns the number of entries updated.
    """
    updated: dict[int, Entry] = {}
    for entry, _base, offset, row in _texture_rows(archive, name, image):
        if not isinstance(entry.data, bytearray):
            entry.data = bytearray(entry.data)
        end = offset + len(row)
        if len(entry.data) < end:
            entry.data.extend(bytes(end - len(entry.data)))
        entry.data[offset:end] = row
        updated[id(entry)] = entry
    return len(updated)


def patch_file(path: PathType, archive: Archive, name: str, image: Image) -> int:
    """Write ``image`` over ``name``'s textures directly in the archive file.

    ``archive`` must be the archive as read from ``path``. Returns the number
    of entries written.
    """
    rows = list(_texture_rows(archive, name, image))
    if not rows:
        return 0
    updated: set[int] = set()
    with open(path, "r+b") as stream:
        for entry, base, offset, row in rows:
            stream.seek(base + entry.header.thtx_offset + THTX_HEADER_SIZE + offset)
            stream.write(row)
            updated.add(id(entry))
    return len(updated)
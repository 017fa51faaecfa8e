"""In-memory model of ANM archives and their binary reading and writing."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path
from typing import Optional, Union

from .pixels import TextureFormat, bytes_per_pixel

PathType = Union[str, "PathLike[str]"]

HEADER_SIZE = 64
THTX_MAGIC = b"THTX"
END_OF_SCRIPT = 0xFFFF

_OLD_HEADER = struct.Struct("<13I2H2I")
_NEW_HEADER = struct.Struct("<I6HI2H2I2HI6I")
_SPRITE = struct.Struct("<I4f")
_SPRITE_OFFSET = struct.Struct("<I")
_SCRIPT_OFFSET = struct.Struct("<iI")
_INSTR0 = struct.Struct("<hBB")
_INSTR = struct.Struct("<HHhH")
_THTX = struct.Struct("<4sHHHHI")

_VERSIONS = frozenset({0, 2, 3, 4, 7, 8})
_NAME_ENCODING = "utf-8"
_NAME_ERRORS = "surrogateescape"


class AnmError(ValueError):
    """Raised when archive data is malformed or cannot be represented."""


@dataclass
class Header:
    """Per-entry header fields, kept in the layout-independent (pre-TH11) form."""

    version: int = 0
    format: int = 0
    width: int = 0
    height: int = 0
    x: int = 0
    y: int = 0
    colorkey: int = 0
    memory_priority: int = 0
    has_data: int = 0
    low_res_scale: int = 0
    zero3: int = 0
    name_offset: int = 0
    thtx_offset: int = 0
    next_offset: int = 0


@dataclass
class Sprite:
    """A rectangle of the entry's texture."""

    id: int
    x: float
    y: float
    w: float
    h: float


@dataclass
class Instruction:
    """One script instruction with its raw parameter bytes."""

    type: int
    time: int
    param_mask: int = 0
    params: bytes = b""


@dataclass
class Script:
    """A numbered script; ``offset`` is its position relative to the entry."""

    id: int
    instructions: list[Instruction] = field(default_factory=list)
    offset: int = 0


@dataclass
class Thtx:
    """Texture header that precedes the pixel data."""

    format: int = 0
    width: int = 0
    height: int = 0
    size: int = 0
    zero: int = 0
    magic: bytes = THTX_MAGIC


@dataclass
class Entry:
    """One archive entry: header, names, sprites, scripts and texture."""

    header: Header
    name: str
    name2: Optional[str] = None
    sprites: list[Sprite] = field(default_factory=list)
    scripts: list[Script] = field(default_factory=list)
    thtx: Thtx = field(default_factory=Thtx)
    data: bytearray = field(default_factory=bytearray)


@dataclass
class Archive:
    """An ANM archive: its entries and the distinct image names they use."""

    names: list[str] = field(default_factory=list)
    entries: list[Entry] = field(default_factory=list)

    def intern_name(self, name: str) -> str:
        """Return the stored name equal to ``name``, adding it if new."""
        for known in self.names:
            if known == name:
                return known
        self.names.append(name)
        return name

    def entries_named(self, name: str) -> list[Entry]:
        """Return the entries whose image name is ``name``, in archive order."""
        return [entry for entry in self.entries if entry.name == name]


def _unpack(layout: struct.Struct, data: bytes, offset: int) -> tuple:
    if offset < 0 or offset + layout.size > len(data):
        raise AnmError(
            f"truncated archive: need {layout.size} bytes at offset {offset}"
        )
    return layout.unpack_from(data, offset)


def _c_string(data: bytes, offset: int) -> str:
    if offset < 0 or offset > len(data):
        raise AnmError(f"string offset {offset} lies outside the archive")
    end = data.find(b"\0", offset)
    if end < 0:
        end = len(data)
    return data[offset:end].decode(_NAME_ENCODING, _NAME_ERRORS)


def _parse_header(data: bytes, base: int) -> tuple[Header, int, int]:
    (sprites, scripts, rt_slot, width, height, fmt, colorkey, name_off, x, y,
     version, priority, thtx_off, has_data, low_res, next_off,
     zero3) = _unpack(_OLD_HEADER, data, base)

    # Bytes 8-12 are always zero in the old layout, and the old script count
    # never reaches the range where the new layout's packed counts land.
    if rt_slot != 0 or scripts > 0xFFFF:
        (version, sprites, scripts, _zero1, width, height, fmt, name_off, x, y,
         priority, thtx_off, has_data, low_res, next_off,
         *_zero2) = _unpack(_NEW_HEADER, data, base)
        colorkey = 0
        zero3 = 0

    if version not in _VERSIONS:
        raise AnmError(f"unsupported header version {version}")
    if has_data not in (0, 1):
        raise AnmError(f"invalid hasdata value {has_data}")
    if zero3 != 0:
        raise AnmError(f"non-zero reserved field {zero3}")
    if version == 8 and low_res_scale_invalid(low_res):
        raise AnmError(f"invalid lowresscale value {low_res}")

    header = Header(
        version=version, format=fmt, width=width, height=height, x=x, y=y,
        colorkey=colorkey, memory_priority=priority, has_data=has_data,
        low_res_scale=low_res, zero3=zero3, name_offset=name_off,
        thtx_offset=thtx_off, next_offset=next_off,
    )
    return header, sprites, scripts


def low_res_scale_invalid(value: int) -> bool:
    return value not in (0, 1)


def _read_instructions(data: bytes, start: int, limit: int,
                       version: int) -> list[Instruction]:
    instructions = []
    pos = start
    if version == 0:
        while pos + _INSTR0.size <= limit:
            time, kind, length = _INSTR0.unpack_from(data, pos)
            if (kind == 0 and time == 0) or pos + _INSTR0.size + length > limit:
                break
            params = data[pos + _INSTR0.size:pos + _INSTR0.size + length]
            instructions.append(Instruction(kind, time, 0, params))
            pos += _INSTR0.size + length
    else:
        while pos + _INSTR.size <= limit:
            kind, length, time, mask = _INSTR.unpack_from(data, pos)
            if kind == END_OF_SCRIPT or pos + length > limit:
                break
            if length < _INSTR.size:
                raise AnmError(f"instruction at offset {pos} has length {length}")
            params = data[pos + _INSTR.size:pos + length]
            instructions.append(Instruction(kind, time, mask, params))
            pos += length
    return instructions


def _read_thtx(data: bytes, offset: int) -> tuple[Thtx, bytearray]:
    magic, zero, fmt, width, height, size = _unpack(_THTX, data, offset)
    if magic != THTX_MAGIC:
        raise AnmError(f"bad texture magic {magic!r} at offset {offset}")
    if zero != 0:
        raise AnmError(f"non-zero texture reserved field {zero}")
    try:
        bpp = bytes_per_pixel(fmt)
    except ValueError as exc:
        raise AnmError(str(exc)) from None
    if width * height * bpp > size:
        raise AnmError(
            f"texture {width}x{height} in format {fmt} does not fit in {size} bytes"
        )
    start = offset + _THTX.size
    if start + size > len(data):
        raise AnmError(f"truncated texture data at offset {start}")
    thtx = Thtx(format=fmt, width=width, height=height, size=size,
                zero=zero, magic=magic)
    return thtx, bytearray(data[start:start + size])


def read_archive(data: bytes) -> Archive:
    """Parse the bytes of an ANM file into an :class:`Archive`."""
    data = bytes(data)
    archive = Archive()
    base = 0
    while True:
        header, sprite_count, script_count = _parse_header(data, base)
        entry = Entry(header=header,
                      name=archive.intern_name(
                          _c_string(data, base + header.name_offset)))
        if header.version == 0 and header.y != 0:
            entry.name2 = _c_string(data, base + header.y)

        if (header.has_data == 0 or entry.name.startswith("@")) != (
                header.thtx_offset == 0):
            raise AnmError(
                f"entry {entry.name!r}: texture offset disagrees with hasdata"
            )

        table = base + HEADER_SIZE
        for index in range(sprite_count):
            (sprite_off,) = _unpack(_SPRITE_OFFSET, data,
                                    table + index * _SPRITE_OFFSET.size)
            entry.sprites.append(Sprite(*_unpack(_SPRITE, data, base + sprite_off)))

        table += sprite_count * _SPRITE_OFFSET.size
        script_table = [
            _unpack(_SCRIPT_OFFSET, data, table + index * _SCRIPT_OFFSET.size)
            for index in range(script_count)
        ]
        for index, (script_id, script_off) in enumerate(script_table):
            if index < script_count - 1:
                limit = base + script_table[index + 1][1]
            elif header.thtx_offset:
                limit = base + header.thtx_offset
            elif header.next_offset:
                limit = base + header.next_offset
            else:
                limit = base + len(data)
            limit = min(limit, len(data))
            entry.scripts.append(Script(
                id=script_id,
                instructions=_read_instructions(
                    data, base + script_off, limit, header.version),
                offset=script_off,
            ))

        if header.has_data:
            entry.thtx, entry.data = _read_thtx(data, base + header.thtx_offset)

        archive.entries.append(entry)
        if not header.next_offset:
            break
        base += header.next_offset
    return archive


def load_archive(path: PathType) -> Archive:
    """Read and parse an ANM file."""
    return read_archive(Path(path).read_bytes())


def _padded_name(name: str) -> bytes:
    raw = name.encode(_NAME_ENCODING, _NAME_ERRORS)
    return raw + b"\0" * (16 - len(raw) % 16)


def _wrap_s16(value: int) -> int:
    return ((value + 0x8000) & 0xFFFF) - 0x8000


def _pack_instruction(instr: Instruction, version: int) -> bytes:
    params = bytes(instr.params)
    if version == 0:
        if len(params) > 0xFF:
            raise AnmError(f"instruction {instr.type}: too many parameter bytes")
        return _INSTR0.pack(_wrap_s16(instr.time), instr.type & 0xFF,
                            len(params)) + params
    if instr.type == END_OF_SCRIPT:
        return _INSTR.pack(END_OF_SCRIPT, 0, _wrap_s16(instr.time),
                           instr.param_mask & 0xFFFF)
    length = _INSTR.size + len(params)
    if length > 0xFFFF:
        raise AnmError(f"instruction {instr.type}: too many parameter bytes")
    return _INSTR.pack(instr.type & 0xFFFF, length, _wrap_s16(instr.time),
                       instr.param_mask & 0xFFFF) + params


def _script_end(version: int) -> bytes:
    if version == 0:
        return _INSTR0.pack(0, 0, 0)
    return _INSTR.pack(END_OF_SCRIPT, 0, 0, 0)


def _pack_header(header: Header, sprites: int, scripts: int) -> bytes:
    u16 = 0xFFFF
    u32 = 0xFFFFFFFF
    if header.version >= 7:
        return _NEW_HEADER.pack(
            header.version & u32, sprites & u16, scripts & u16, 0,
            header.width & u16, header.height & u16, header.format & u16,
            header.name_offset & u32, header.x & u16, header.y & u16,
            header.memory_priority & u32, header.thtx_offset & u32,
            header.has_data & u16, header.low_res_scale & u16,
            header.next_offset & u32, 0, 0, 0, 0, 0, 0,
        )
    return _OLD_HEADER.pack(
        sprites & u32, scripts & u32, 0, header.width & u32,
        header.height & u32, header.format & u32, header.colorkey & u32,
        header.name_offset & u32, header.x & u32, header.y & u32,
        header.version & u32, header.memory_priority & u32,
        header.thtx_offset & u32, header.has_data & u16,
        header.low_res_scale & u16, header.next_offset & u32,
        header.zero3 & u32,
    )


def _serialize_entry(entry: Entry, last: bool) -> bytes:
    header = entry.header
    table_size = (HEADER_SIZE + len(entry.sprites) * _SPRITE_OFFSET.size
                  + len(entry.scripts) * _SCRIPT_OFFSET.size)
    body = bytearray()

    def position() -> int:
        return table_size + len(body)

    header.name_offset = position()
    body += _padded_name(entry.name)
    if entry.name2 is not None and header.version == 0:
        header.y = position()
        body += _padded_name(entry.name2)

    sprite_start = position()
    for sprite in entry.sprites:
        body += _SPRITE.pack(sprite.id, sprite.x, sprite.y, sprite.w, sprite.h)

    for script in entry.scripts:
        script.offset = position()
        for instr in script.instructions:
            body += _pack_instruction(instr, header.version)
        body += _script_end(header.version)

    if header.has_data:
        thtx = entry.thtx
        header.thtx_offset = position()
        body += _THTX.pack(bytes(thtx.magic)[:4].ljust(4, b"\0"), thtx.zero,
                           thtx.format & 0xFFFF, thtx.width, thtx.height,
                           thtx.size)
        body += bytes(entry.data[:thtx.size]).ljust(thtx.size, b"\0")

    header.next_offset = 0 if last else position()

    sprite_table = b"".join(
        _SPRITE_OFFSET.pack(sprite_start + index * _SPRITE.size)
        for index in range(len(entry.sprites))
    )
    script_table = b"".join(
        _SCRIPT_OFFSET.pack(script.id, script.offset) for script in entry.scripts
    )
    return (_pack_header(header, len(entry.sprites), len(entry.scripts))
            + sprite_table + script_table + bytes(body))


def serialize_archive(archive: Archive) -> bytes:
    """Lay out the archive as ANM file bytes.

    The offsets stored in each entry's header and scripts are updated to
    match the written layout.
    """
    count = len(archive.entries)
    return b"".join(
        _serialize_entry(entry, index == count - 1)
        for index, entry in enumerate(archive.entries)
    )


def save_archive(archive: Archive, path: PathType) -> None:
    """Write the archive to ``path``."""
    Path(path).write_bytes(serialize_archive(archive))


__all__ = [
    "AnmError", "Archive", "Entry", "Header", "Instruction", "Script",
    "Sprite", "Thtx", "TextureFormat", "load_archive", "read_archive",
    "save_archive", "serialize_archive",
]
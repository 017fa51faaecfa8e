"""Plain-text spec files describing ANM archives: dumping and parsing."""

from __future__ import annotations

import logging
import math
import re
import struct
from typing import Iterator, Optional

from .archive import Archive, Entry, Header, Instruction, Script, Sprite
from .opcodes import decode_params, find_format, opcode_table, param_text

log = logging.getLogger(__name__)

_INT = r"\s*([+-]?\d+)"
_FLOAT = (
    r"\s*([+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|(?i:inf(?:inity)?|nan)))"
)

_ENTRY_OLD = re.compile(r"ENTRY" + _INT)
_ENTRY_NEW = re.compile(r"ENTRY\s*#" + _INT + r",\s*VERSION" + _INT)
_SPRITE = re.compile(
    r"Sprite:" + _INT + _FLOAT + r"\*" + _FLOAT + r"\+" + _FLOAT + r"\+" + _FLOAT
)
_SCRIPT = re.compile(r"Script:" + _INT)
_COLORKEY = re.compile(r"ColorKey:\s*([0-9a-fA-F]{1,8})")
_STRTOL = re.compile(_INT)
_STRTOD = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

# (label, target, attribute, bits)
_PLAIN_FIELDS = (
    ("Format", "header", "format", 32),
    ("Width", "header", "width", 32),
    ("Height", "header", "height", 32),
    ("X-Offset", "header", "x", 32),
    ("Y-Offset", "header", "y", 32),
    ("Zero3", "header", "zero3", 32),
    ("HasData", "header", "has_data", 16),
    ("THTX-Size", "thtx", "size", 32),
    ("THTX-Format", "thtx", "format", 16),
    ("THTX-Width", "thtx", "width", 16),
    ("THTX-Height", "thtx", "height", 16),
    ("THTX-Zero", "thtx", "zero", 16),
)

# Fields written by older spec writers, mapped to their current meaning.
_DEPRECATED_FIELDS = (
    ("Zero2", "colorkey", 32),
    ("Unknown1", "memory_priority", 32),
    ("Unknown2", "low_res_scale", 16),
)


class SpecError(ValueError):
    """Raised when a spec cannot be parsed or an archive cannot be dumped."""


def _unsigned(value: int, bits: int) -> int:
    return value & ((1 << bits) - 1)


def _signed(value: int, bits: int) -> int:
    value = _unsigned(value, bits)
    return value - (1 << bits) if value >= 1 << (bits - 1) else value


def _float32_bytes(value: float) -> bytes:
    try:
        return struct.pack("<f", value)
    except OverflowError:
        return struct.pack("<f", math.copysign(math.inf, value))


def _float32(value: float) -> float:
    return struct.unpack("<f", _float32_bytes(value))[0]


def cut_filename(text: str) -> str:
    """Return the name in ``text``: up to the first newline, without
    surrounding spaces and tabs."""
    return text.split("\n", 1)[0].strip(" \t")


# --- dumping -----------------------------------------------------------------


def _dump_entry(number: int, entry: Entry, game_version: int) -> Iterator[str]:
    header = entry.header
    try:
        opcode_table(header.version)
    except ValueError as exc:
        raise SpecError(str(exc)) from None
    if header.version != 8 and game_version != 0:
        raise SpecError(f"unexpected header version {header.version}")

    yield f"ENTRY #{number}, VERSION {header.version}"
    yield f"Name: {entry.name}"
    if entry.name2 is not None:
        yield f"Name2: {entry.name2}"
    yield f"Format: {header.format}"
    yield f"Width: {header.width}"
    yield f"Height: {header.height}"
    if header.x != 0:
        yield f"X-Offset: {header.x}"
    if entry.name2 is None and header.y != 0:
        yield f"Y-Offset: {header.y}"
    if header.version < 7:
        yield f"ColorKey: {_unsigned(header.colorkey, 32):08x}"
    if header.zero3 != 0:
        yield f"Zero3: {header.zero3}"
    if header.version >= 1:
        yield f"MemoryPriority: {header.memory_priority}"
    if header.version >= 8:
        yield f"LowResScale: {header.low_res_scale}"
    if header.has_data:
        thtx = entry.thtx
        yield f"HasData: {header.has_data}"
        yield f"THTX-Size: {thtx.size}"
        yield f"THTX-Format: {thtx.format}"
        yield f"THTX-Width: {thtx.width}"
        yield f"THTX-Height: {thtx.height}"
        yield f"THTX-Zero: {thtx.zero}"
    yield ""

    for sprite in entry.sprites:
        yield (f"Sprite: {sprite.id} {sprite.w:.0f}*{sprite.h:.0f}"
               f"+{sprite.x:.0f}+{sprite.y:.0f}")
    yield ""

    for script in entry.scripts:
        yield f"Script: {script.id}"
        for index, instr in enumerate(script.instructions):
            fmt = find_format(header.version, instr.type, game_version)
            line = (f"Instruction #{index}: {_signed(instr.time, 16)} "
                    f"{_unsigned(instr.param_mask, 16)} {_unsigned(instr.type, 16)}")
            if instr.params:
                try:
                    values = decode_params(instr.params, fmt)
                except ValueError as exc:
                    raise SpecError(f"instruction {instr.type}: {exc}") from None
                line += "".join(" " + param_text(value) for value in values)
            yield line
        yield ""
    yield ""


def dump_spec(archive: Archive, game_version: int = 0) -> str:
    """Describe ``archive`` as spec text.

    ``game_version`` is 0 for older games, or 18, 185 or 19 for games whose
    instruction set is patched; those require every entry to be version 8.
    """
    return "".join(
        line + "\n"
        for number, entry in enumerate(archive.entries)
        for line in _dump_entry(number, entry, game_version)
    )


# --- parsing -----------------------------------------------------------------


def _strtol(text: str, pos: int) -> tuple[int, int]:
    match = _STRTOL.match(text, pos)
    if not match:
        return 0, pos
    return int(match.group(1)), match.end()


def _scan(line: str, label: str, bits: int) -> Optional[int]:
    match = re.match(re.escape(label) + ":" + _INT, line)
    if not match:
        return None
    return _unsigned(int(match.group(1)), bits)


class _SpecParser:
    def __init__(self, source: str) -> None:
        self.source = source
        self.archive = Archive()
        self.entry: Optional[Entry] = None
        self.script: Optional[Script] = None
        self.line_number = 0
        self._unnamed: dict[int, int] = {}

    def _where(self, text: str) -> str:
        return f"{self.source}:{self.line_number}: {text}"

    def _error(self, text: str) -> SpecError:
        return SpecError(self._where(text))

    def _report(self, text: str) -> None:
        log.warning("%s", self._where(text))

    def _current_entry(self) -> Entry:
        if self.entry is None:
            raise self._error("field given outside of an entry")
        return self.entry

    def feed(self, line: str) -> None:
        self.line_number += 1
        if line.startswith("ENTRY "):
            self._start_entry(line)
        elif line.startswith("Name: "):
            entry = self._current_entry()
            entry.name = self.archive.intern_name(cut_filename(line[len("Name: "):]))
            self._unnamed.pop(id(entry), None)
        elif line.startswith("Name2: "):
            self._current_entry().name2 = cut_filename(line[len("Name2: "):])
        elif line.startswith("Sprite: "):
            self._parse_sprite(line)
        elif line.startswith("Script: "):
            self._parse_script(line)
        elif line.startswith("Instruction"):
            self._parse_instruction(line)
        else:
            self._parse_field(line)

    def _start_entry(self, line: str) -> None:
        entry = Entry(header=Header(), name="")
        self.archive.entries.append(entry)
        self.entry = entry
        self.script = None
        self._unnamed[id(entry)] = self.line_number

        old = _ENTRY_OLD.match(line)
        if old:
            entry.header.version = _unsigned(int(old.group(1)), 32)
            self._report(
                "warning: No entry number detected. This spec uses an older "
                "layout; re-dump it after creation to remove this warning"
            )
            return
        new = _ENTRY_NEW.match(line)
        if new:
            entry.header.version = _unsigned(int(new.group(2)), 32)

    def _parse_sprite(self, line: str) -> None:
        entry = self._current_entry()
        match = _SPRITE.match(line)
        if not match:
            raise self._error(f"Sprite parsing failed for {line.rstrip()}")
        w, h, x, y = (_float32(float(group)) for group in match.groups()[1:])
        entry.sprites.append(Sprite(_unsigned(int(match.group(1)), 32), x, y, w, h))

    def _parse_script(self, line: str) -> None:
        entry = self._current_entry()
        match = _SCRIPT.match(line)
        if not match:
            raise self._error(f"Script parsing failed for {line.rstrip()}")
        script = Script(id=_signed(int(match.group(1)), 32))
        entry.scripts.append(script)
        self.script = script

    def _parse_instruction(self, line: str) -> None:
        colon = line.find(":", len("Instruction"))
        if colon < 0:
            raise self._error(f"Instruction parsing failed for {line.rstrip()}")
        if self.script is None:
            raise self._error("instruction given outside of a script")

        pos = colon + 1
        time, pos = _strtol(line, pos)
        mask, pos = _strtol(line, pos)
        kind, pos = _strtol(line, pos)

        params = bytearray()
        while True:
            match = _STRTOL.match(line, pos)
            if not match:
                break
            after = match.end()
            if line[after:after + 1] in ("f", "."):
                real = _STRTOD.match(line, pos)
                params += _float32_bytes(float(real.group(1)))
                after = min(real.end() + 1, len(line))
            else:
                params += struct.pack("<I", _unsigned(int(match.group(1)), 32))
            pos = after

        self.script.instructions.append(Instruction(
            type=_unsigned(kind, 16),
            time=_signed(time, 16),
            param_mask=_unsigned(mask, 16),
            params=bytes(params),
        ))

    def _parse_field(self, line: str) -> None:
        for label, target, attr, bits in _PLAIN_FIELDS:
            value = _scan(line, label, bits)
            if value is not None:
                entry = self._current_entry()
                setattr(entry.header if target == "header" else entry.thtx,
                        attr, value)

        for label, attr, bits in _DEPRECATED_FIELDS:
            value = _scan(line, label, bits)
            if value is not None:
                setattr(self._current_entry().header, attr, value)
                self._report(
                    f"warning: {label} is an old field name; re-dump the spec "
                    "after creation to remove this warning"
                )

        colorkey = _COLORKEY.match(line)
        if colorkey:
            header = self._current_entry().header
            header.colorkey = int(colorkey.group(1), 16)
            if header.version >= 7:
                self._report("ColorKey is no longer supported in ANM versions >= 7")

        priority = _scan(line, "MemoryPriority", 32)
        if priority is not None:
            header = self._current_entry().header
            header.memory_priority = priority
            if header.version == 0:
                self._report("MemoryPriority is ignored in ANM version 0")

        low_res = _scan(line, "LowResScale", 16)
        if low_res is not None:
            header = self._current_entry().header
            header.low_res_scale = low_res
            if header.version < 8:
                self._report("LowResScale is ignored in ANM versions < 8")

    def finish(self) -> Archive:
        if self._unnamed:
            line = min(self._unnamed.values())
            raise SpecError(f"{self.source}:{line}: entry has no Name")
        return self.archive


def parse_spec(text: str, source: str = "<spec>") -> Archive:
    """Build an archive from spec text; ``source`` names it in messages.

    Texture data is left empty; the entries only describe its layout.
    """
    parser = _SpecParser(source)
    for line in text.splitlines(keepends=True):
        parser.feed(line)
    return parser.finish()
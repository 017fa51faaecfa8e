"""Instruction parameter formats per header version, and parameter decoding."""

from __future__ import annotations

import math
import struct
from types import MappingProxyType
from typing import Mapping, Union

Param = Union[int, float]


class UnknownOpcodeError(LookupError):
    """Raised when an instruction type has no entry in the format table."""

    def __init__(self, opcode: int) -> None:
        super().__init__(f"id {opcode} was not found in the format table")
        self.opcode = opcode


def _table(pairs) -> Mapping[int, str]:
    return MappingProxyType(dict(pairs))


_FORMATS_V0 = _table([
    (0, ""), (1, "S"), (2, "ff"), (3, "S"), (4, "S"), (5, "S"), (7, ""),
    (9, "fff"), (10, "fSf"), (11, "ff"), (12, "SS"), (13, ""), (14, ""),
    (15, ""), (16, "SS"), (17, "fff"), (18, "ffSS"), (19, "ffSS"),
    (20, "fffS"), (21, ""), (22, "S"), (23, ""), (24, ""), (25, "S"),
    (26, "S"), (27, "f"), (28, "f"), (29, "S"), (30, "ffS"), (31, "S"),
])

_FORMATS_V2 = _table([
    (0, ""), (1, ""), (2, ""), (3, "S"), (4, "SS"), (5, "SSS"), (6, "fff"),
    (7, "ff"), (8, "S"), (9, "S"), (10, ""), (12, "fff"), (13, "fff"),
    (14, "ff"), (15, "SS"), (16, "S"), (17, "ffSS"), (18, "ffSS"),
    (19, "fffS"), (20, ""), (21, "S"), (22, ""), (23, ""), (24, "S"),
    (25, "S"), (26, "f"), (27, "f"), (28, "S"), (29, "ffS"), (30, "S"),
    (31, "S"), (32, "SSffS"), (33, "SSS"), (34, "SSS"), (35, "SSSSf"),
    (36, "SSff"), (37, "SS"), (38, "ff"), (42, "ff"), (50, "fff"),
    (52, "fff"), (55, "SSS"), (59, "SS"), (60, "ff"), (69, "SSSS"),
    (79, "S"), (80, "S"), (0xFFFF, ""),
])

_FORMATS_V3 = _table([
    (0, ""), (1, ""), (2, ""), (3, "S"), (4, "SS"), (5, "SSS"), (6, "fff"),
    (7, "ff"), (8, "S"), (9, "SSS"), (10, ""), (12, "fff"), (13, "fff"),
    (14, "ff"), (15, "SS"), (16, "S"), (17, "ffSS"), (18, "ffSS"),
    (20, ""), (21, "S"), (22, ""), (23, ""), (24, "S"), (25, "S"),
    (26, "f"), (27, "f"), (28, "S"), (30, "S"), (31, "S"), (32, "SSfff"),
    (33, "SSSSS"), (34, "SSS"), (35, "SSSSf"), (36, "SSff"), (37, "SS"),
    (38, "ff"), (40, "ff"), (42, "ff"), (44, "ff"), (49, "SSS"),
    (50, "fff"), (52, "fff"), (54, "fff"), (55, "SSS"), (56, "fff"),
    (59, "SS"), (60, "ff"), (69, "SSSS"), (79, "S"), (80, "f"), (81, "f"),
    (82, "S"), (83, "S"), (85, "S"), (86, "SSSSS"), (87, "SSS"), (89, ""),
    (0xFFFF, ""),
])

_FORMATS_V4P = _table([
    (0, ""), (1, ""), (2, ""), (3, "S"), (4, "SS"), (5, "SSS"), (6, "SS"),
    (7, "ff"), (8, "SS"), (9, "ff"), (11, "ff"), (13, "ff"), (18, "SSS"),
    (19, "fff"), (21, "fff"), (22, "SSS"), (23, "fff"), (24, "SSS"),
    (25, "fff"), (26, "SSS"), (27, "fff"), (30, "SSSS"), (40, "SS"),
    (42, "ff"), (43, "ff"), (48, "fff"), (49, "fff"), (50, "ff"),
    (51, "S"), (52, "SSS"), (53, "fff"), (56, "SSfff"), (57, "SSSSS"),
    (58, "SSS"), (59, "SSfSf"), (60, "SSff"), (61, ""), (63, ""),
    (64, "S"), (65, "S"), (66, "S"), (67, "S"), (68, "S"), (69, ""),
    (70, "f"), (71, "f"), (73, "S"), (74, "S"), (75, "S"), (76, "SSS"),
    (77, "S"), (78, "SSSSS"), (79, "SSS"), (80, "S"), (81, ""), (82, "S"),
    (83, ""), (84, "S"), (85, "S"), (86, "S"), (87, "S"), (88, "S"),
    (89, "S"), (90, "S"), (91, "S"), (92, "S"), (93, "SSf"), (94, "SSf"),
    (95, "S"), (96, "Sff"), (100, "SfffffSffS"), (101, "S"), (102, "SS"),
    (103, "ff"), (104, "fS"), (105, "fS"), (106, "fS"), (107, "SSff"),
    (108, "ff"), (110, "ff"), (111, "S"), (112, "S"), (113, "SSf"),
    (114, "S"), (0xFFFF, ""),
])

_FORMATS_V8 = _table([
    (0, ""), (1, ""), (2, ""), (3, ""), (4, ""), (5, "S"), (6, "S"), (7, ""),
    (100, "SS"), (101, "ff"), (102, "SS"), (103, "ff"), (104, "SS"),
    (105, "ff"), (107, "ff"), (109, "CS"), (112, "SSS"), (113, "fff"),
    (115, "fff"), (117, "fff"), (118, "SSS"), (119, "fff"), (120, "SSS"),
    (121, "fff"), (122, "SS"), (124, "ff"), (125, "ff"), (130, "ffff"),
    (131, "ffff"), (200, "SS"), (201, "SSS"), (202, "SSSS"), (204, "SSSS"),
    (300, "S"), (301, "SS"), (302, "S"), (303, "S"), (304, "S"), (305, "S"),
    (306, "S"), (307, "S"), (308, ""), (310, "S"), (311, "S"), (312, "SS"),
    (313, "S"), (314, "S"), (315, "S"), (316, ""), (317, ""), (318, "S"),
    (400, "fff"), (401, "fff"), (402, "ff"), (403, "S"), (404, "SSS"),
    (405, "S"), (406, "SSS"), (407, "SSfff"), (408, "SSSSS"), (409, "SSS"),
    (410, "SSfff"), (412, "SSff"), (413, "SSSSS"), (414, "SSS"),
    (415, "fff"), (420, "SffSSSSffS"), (421, "S"), (422, ""), (423, "S"),
    (424, "S"), (425, "f"), (426, "f"), (428, "SSf"), (429, "Sf"),
    (430, "SSff"), (431, "S"), (432, "S"), (433, "SSff"), (434, "ff"),
    (435, "SSff"), (436, "ff"), (437, "S"), (438, "S"), (439, "S"),
    (440, ""), (500, "S"), (501, "S"), (502, "S"), (503, "S"), (504, "S"),
    (505, "Sff"), (506, "SSf"), (507, "S"), (508, "S"), (509, ""),
    (510, "Sff"), (600, "S"), (602, "S"), (603, "ff"), (604, "fS"),
    (605, "fS"), (606, "ff"), (608, "ff"), (609, "S"), (610, "S"),
    (611, "ffS"), (612, "ff"), (614, "ff"), (0xFFFF, ""), (615, "ffS"),
    (616, "ffS"), (617, "fS"), (618, ""), (621, "ffS"), (622, "ffS"),
])

_TH18_PATCH = _table([(439, "Sff")])

_TABLES = {
    0: _FORMATS_V0,
    2: _FORMATS_V2,
    3: _FORMATS_V3,
    4: _FORMATS_V4P,
    7: _FORMATS_V4P,
    8: _FORMATS_V8,
}

# Games whose instruction set differs from the plain version 8 table.
_PATCHED_GAMES = frozenset({18, 185, 19})

_PARAM_SIZE = 4


def opcode_table(header_version: int) -> Mapping[int, str]:
    """Return the opcode-to-parameter-format table for an entry header version."""
    try:
        return _TABLES[header_version]
    except KeyError:
        raise ValueError(
            f"could not find a format description for version {header_version}"
        ) from None


def find_format(header_version: int, opcode: int, game_version: int = 0) -> str:
    """Return the parameter format of ``opcode``, honouring per-game patches."""
    table = opcode_table(header_version)
    if game_version in _PATCHED_GAMES and opcode in _TH18_PATCH:
        return _TH18_PATCH[opcode]
    try:
        return table[opcode]
    except KeyError:
        raise UnknownOpcodeError(opcode) from None


def decode_params(data: bytes, fmt: str) -> list[Param]:
    """Decode instruction parameter bytes according to a format string.

    ``S`` is a signed 32-bit integer, ``C`` an unsigned 32-bit colour and
    ``f`` a 32-bit float, all little-endian. Bytes beyond the format are ignored.
    """
    data = bytes(data)
    needed = len(fmt) * _PARAM_SIZE
    if len(data) < needed:
        raise ValueError(
            f"parameter data is {len(data)} bytes, format {fmt!r} needs {needed}"
        )
    values: list[Param] = []
    for pos, kind in enumerate(fmt):
        chunk = data[pos * _PARAM_SIZE:(pos + 1) * _PARAM_SIZE]
        if kind == "S":
            values.append(struct.unpack("<i", chunk)[0])
        elif kind == "C":
            values.append(struct.unpack("<I", chunk)[0])
        elif kind == "f":
            values.append(struct.unpack("<f", chunk)[0])
        else:
            raise ValueError(f"unknown parameter type {kind!r} in format {fmt!r}")
    return values


def _float32_bits(value: float) -> bytes:
    return struct.pack("<f", value)


def param_text(value: Param) -> str:
    """Render a decoded parameter the way specs write it.

    Integers are plain decimal; floats use fixed-point notation with a
    trailing ``f`` and as many decimals as needed to keep the exact value.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    value = float(value)
    if not math.isfinite(value):
        return f"{value}f"
    target = _float32_bits(value)
    for decimals in range(1, 160):
        text = f"{value:.{decimals}f}"
        if _float32_bits(float(text)) == target:
            return text + "f"
    return f"{value:.160f}f"
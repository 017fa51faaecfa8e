import logging
import struct

import pytest

from anmkit.archive import (
    Archive,
    Entry,
    Header,
    Instruction,
    Script,
    Sprite,
    read_archive,
    serialize_archive,
)
from anmkit.opcodes import UnknownOpcodeError, decode_params
from anmkit.spec import SpecError, cut_filename, dump_spec, parse_spec

SPEC_V8 = """ENTRY #0, VERSION 8
Name: stage.png
Format: 1
Width: 64
Height: 32
MemoryPriority: 10
LowResScale: 1
HasData: 1
THTX-Size: 8192
THTX-Format: 1
THTX-Width: 64
THTX-Height: 32
THTX-Zero: 0

Sprite: 0 32*32+0+0
Sprite: 1 32*32+32+0

Script: 0
Instruction #0: 0 0 5 7
Instruction #1: 10 0 101 1.5f -2.5f
Instruction #2: 20 0 0

Script: 1
Instruction #0: 0 0 1


"""

SPEC_V0 = """ENTRY #0, VERSION 0
Name: @title.png
Name2: title_a.png
Format: 5
Width: 128
Height: 64
ColorKey: ff000000

Sprite: 0 64*64+0+0

Script: 3
Instruction #0: 0 0 1 0
Instruction #1: 5 0 2 1.0f 0.5f


"""


def _v8_archive():
    header = Header(version=8, format=1, width=256, height=128,
                    memory_priority=10, low_res_scale=1)
    script = Script(id=2, instructions=[
        Instruction(type=5, time=10, param_mask=0, params=struct.pack("<i", 7)),
    ])
    entry = Entry(header=header, name="stage.png",
                  sprites=[Sprite(3, 0.0, 8.0, 32.0, 16.0)], scripts=[script])
    return Archive(names=["stage.png"], entries=[entry])


def test_dump_writes_entry_fields():
    lines = dump_spec(_v8_archive()).splitlines()
    assert lines[0] == "ENTRY #0, VERSION 8"
    assert "Name: stage.png" in lines
    assert "MemoryPriority: 10" in lines
    assert "LowResScale: 1" in lines
    assert "Sprite: 3 32*16+0+8" in lines
    assert "Script: 2" in lines
    assert "Instruction #0: 10 0 5 7" in lines
    assert not any(line.startswith("ColorKey") for line in lines)
    assert not any(line.startswith("HasData") for line in lines)


def test_dump_version0_has_colorkey_but_no_priority():
    header = Header(version=0, colorkey=0xFF000000, x=4)
    archive = Archive(names=["a.png"], entries=[Entry(header=header, name="a.png")])
    lines = dump_spec(archive).splitlines()
    assert "ColorKey: ff000000" in lines
    assert "X-Offset: 4" in lines
    assert not any(line.startswith("MemoryPriority") for line in lines)


@pytest.mark.parametrize("text", [SPEC_V8, SPEC_V0])
def test_parse_then_dump_is_identity(text):
    assert dump_spec(parse_spec(text)) == text


@pytest.mark.parametrize("text", [SPEC_V8, SPEC_V0])
def test_binary_round_trip_keeps_spec(text):
    archive = parse_spec(text)
    for entry in archive.entries:
        if entry.header.has_data:
            entry.data = bytearray(entry.thtx.size)
    reread = read_archive(serialize_archive(archive))
    assert dump_spec(reread) == text


def test_parse_v8_values():
    archive = parse_spec(SPEC_V8)
    entry = archive.entries[0]
    assert entry.header.version == 8
    assert entry.header.width == 64
    assert entry.thtx.size == 8192
    assert entry.thtx.magic == b"THTX"
    assert [s.x for s in entry.sprites] == [0.0, 32.0]
    first = entry.scripts[0].instructions
    assert decode_params(first[0].params, "S") == [7]
    assert decode_params(first[1].params, "ff") == [1.5, -2.5]
    assert first[2].params == b""


def test_parse_name2_suppresses_y_offset():
    archive = parse_spec(SPEC_V0)
    entry = archive.entries[0]
    assert entry.name == "@title.png"
    assert entry.name2 == "title_a.png"
    assert entry.header.colorkey == 0xFF000000


def test_instruction_time_is_signed_and_colour_unsigned():
    text = ("ENTRY #0, VERSION 8\nName: a.png\nScript: 0\n"
            "Instruction #0: -5 0 109 4294967295 6\n")
    archive = parse_spec(text)
    instr = archive.entries[0].scripts[0].instructions[0]
    assert instr.time == -5
    assert instr.type == 109
    assert decode_params(instr.params, "CS") == [4294967295, 6]
    assert "Instruction #0: -5 0 109 4294967295 6" in dump_spec(archive)


def test_negative_sprite_offset_round_trips():
    text = "ENTRY #0, VERSION 8\nName: a.png\nSprite: 4 16*16+-8+4\n"
    archive = parse_spec(text)
    sprite = archive.entries[0].sprites[0]
    assert (sprite.x, sprite.y, sprite.w, sprite.h) == (-8.0, 4.0, 16.0, 16.0)
    assert "Sprite: 4 16*16+-8+4" in dump_spec(archive)


def test_names_are_interned():
    text = ("ENTRY #0, VERSION 8\nName: a.png\n"
            "ENTRY #1, VERSION 8\nName:   a.png  \n")
    archive = parse_spec(text)
    assert archive.names == ["a.png"]
    assert [e.name for e in archive.entries] == ["a.png", "a.png"]


def test_old_entry_line_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="anmkit.spec"):
        archive = parse_spec("ENTRY 7\nName: a.png\n", "old.spec")
    assert archive.entries[0].header.version == 7
    assert "old.spec:1:" in caplog.text


def test_deprecated_field_sets_value_and_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="anmkit.spec"):
        archive = parse_spec("ENTRY #0, VERSION 4\nName: a.png\nUnknown1: 11\n")
    assert archive.entries[0].header.memory_priority == 11
    assert "Unknown1" in caplog.text


def test_colorkey_in_new_version_is_reported(caplog):
    with caplog.at_level(logging.WARNING, logger="anmkit.spec"):
        archive = parse_spec("ENTRY #0, VERSION 8\nName: a.png\nColorKey: 000000ff\n")
    assert archive.entries[0].header.colorkey == 0xFF
    assert "ColorKey is no longer supported" in caplog.text


def test_bad_sprite_raises():
    with pytest.raises(SpecError, match="Sprite parsing failed"):
        parse_spec("ENTRY #0, VERSION 8\nName: a.png\nSprite: x\n")


def test_bad_script_raises():
    with pytest.raises(SpecError, match="Script parsing failed"):
        parse_spec("ENTRY #0, VERSION 8\nName: a.png\nScript: none\n")


def test_instruction_without_colon_raises():
    with pytest.raises(SpecError, match="Instruction parsing failed"):
        parse_spec("ENTRY #0, VERSION 8\nName: a.png\nScript: 0\nInstruction 1 2\n")


def test_instruction_outside_script_raises():
    with pytest.raises(SpecError):
        parse_spec("ENTRY #0, VERSION 8\nName: a.png\nInstruction #0: 0 0 0\n")


def test_field_before_entry_raises():
    with pytest.raises(SpecError, match="my.spec:1:"):
        parse_spec("Width: 5\n", "my.spec")


def test_entry_without_name_raises():
    with pytest.raises(SpecError, match="no Name"):
        parse_spec("ENTRY #0, VERSION 8\nWidth: 5\n")


def test_game_version_requires_version8_entries():
    archive = parse_spec(SPEC_V0)
    with pytest.raises(SpecError, match="unexpected header version"):
        dump_spec(archive, 18)


def test_game_version_patch_changes_decoding():
    text = ("ENTRY #0, VERSION 8\nName: a.png\nScript: 0\n"
            "Instruction #0: 0 0 439 1 2.5f 3.5f\n")
    archive = parse_spec(text)
    patched = dump_spec(archive, 18)
    assert "Instruction #0: 0 0 439 1 2.5f 3.5f" in patched
    assert "Instruction #0: 0 0 439 1\n" in dump_spec(archive, 0)


def test_unknown_opcode_raises():
    archive = parse_spec("ENTRY #0, VERSION 8\nName: a.png\nScript: 0\n"
                         "Instruction #0: 0 0 9999\n")
    with pytest.raises(UnknownOpcodeError):
        dump_spec(archive)


@pytest.mark.parametrize("raw, expected", [
    ("  foo.png  \n", "foo.png"),
    ("\tdata/a b.png\t\n", "data/a b.png"),
    ("plain.png", "plain.png"),
    ("x.png\nrest", "x.png"),
])
def test_cut_filename(raw, expected):
    assert cut_filename(raw) == expected
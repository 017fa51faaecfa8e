import struct

import pytest

from anmkit.archive import (
    AnmError,
    Archive,
    Entry,
    Header,
    Instruction,
    Script,
    Sprite,
    Thtx,
    load_archive,
    read_archive,
    save_archive,
    serialize_archive,
)
from anmkit.pixels import TextureFormat


def make_v8_entry(archive, name="data/a.png", with_data=True):
    header = Header(version=8, format=TextureFormat.BGRA8888, width=256,
                    height=2, memory_priority=10, low_res_scale=1,
                    has_data=1 if with_data else 0)
    entry = Entry(header=header, name=archive.intern_name(name))
    entry.sprites = [Sprite(0, 0.0, 0.0, 16.0, 32.5), Sprite(1, 16.0, 0.0, 8.0, 8.0)]
    entry.scripts = [
        Script(id=0, instructions=[
            Instruction(type=300, time=0, param_mask=0, params=struct.pack("<i", 3)),
            Instruction(type=400, time=5, param_mask=2,
                        params=struct.pack("<fff", 1.0, 2.5, -3.0)),
        ]),
        Script(id=1, instructions=[Instruction(type=1, time=-2)]),
    ]
    if with_data:
        entry.thtx = Thtx(format=TextureFormat.BGRA8888, width=2, height=2, size=16)
        entry.data = bytearray(range(16))
    archive.entries.append(entry)
    return entry


def make_v0_entry(archive, name="data/b.png"):
    header = Header(version=0, format=TextureFormat.ARGB4444, width=64,
                    height=64, colorkey=0xFF000000)
    entry = Entry(header=header, name=archive.intern_name(name), name2="data/b_a.png")
    entry.scripts = [
        Script(id=3, instructions=[
            Instruction(type=1, time=0, params=struct.pack("<i", 7)),
            Instruction(type=2, time=4, params=struct.pack("<ff", 1.0, 0.5)),
        ])
    ]
    archive.entries.append(entry)
    return entry


def test_v8_round_trip_preserves_entries():
    archive = Archive()
    make_v8_entry(archive)
    data = serialize_archive(archive)
    loaded = read_archive(data)
    assert loaded.names == ["data/a.png"]
    assert loaded.entries == archive.entries


def test_v8_header_starts_with_version():
    archive = Archive()
    make_v8_entry(archive)
    data = serialize_archive(archive)
    assert data[:4] == struct.pack("<I", 8)


def test_old_header_starts_with_sprite_count():
    archive = Archive()
    entry = make_v0_entry(archive)
    entry.sprites = [Sprite(4, 0.0, 0.0, 1.0, 1.0)]
    data = serialize_archive(archive)
    assert struct.unpack_from("<I", data, 0)[0] == 1
    assert struct.unpack_from("<I", data, 40)[0] == 0


def test_v0_round_trip_keeps_name2_and_params():
    archive = Archive()
    make_v0_entry(archive)
    data = serialize_archive(archive)
    loaded = read_archive(data)
    entry = loaded.entries[0]
    assert entry.name2 == "data/b_a.png"
    assert entry.header.colorkey == 0xFF000000
    assert entry.header.y == archive.entries[0].header.y
    assert entry.scripts == archive.entries[0].scripts
    assert all(instr.param_mask == 0 for instr in entry.scripts[0].instructions)


def test_minimal_entry_layout_is_fixed():
    archive = Archive()
    archive.entries.append(Entry(header=Header(version=2), name=archive.intern_name("a")))
    data = serialize_archive(archive)
    assert archive.entries[0].header.name_offset == 64
    assert data[64:66] == b"a\0"
    assert len(data) == 64 + 16


def test_v8_empty_script_ends_with_sentinel():
    archive = Archive()
    entry = make_v8_entry(archive, with_data=False)
    entry.scripts = [Script(id=0)]
    data = serialize_archive(archive)
    assert data.endswith(b"\xff\xff\x00\x00\x00\x00\x00\x00")


def test_v0_empty_script_ends_with_zero_sentinel():
    archive = Archive()
    entry = make_v0_entry(archive)
    entry.name2 = None
    entry.scripts = [Script(id=0)]
    data = serialize_archive(archive)
    assert data.endswith(b"\x00\x00\x00\x00")
    assert read_archive(data).entries[0].scripts[0].instructions == []


def test_texture_header_written_with_magic():
    archive = Archive()
    entry = make_v8_entry(archive)
    data = serialize_archive(archive)
    offset = entry.header.thtx_offset
    assert data[offset:offset + 4] == b"THTX"
    assert data[offset + 16:offset + 32] == bytes(range(16))


def test_multiple_entries_chain_and_share_names():
    archive = Archive()
    first = make_v8_entry(archive, name="x.png")
    second = make_v8_entry(archive, name="x.png")
    data = serialize_archive(archive)
    assert second.header.next_offset == 0
    assert first.header.next_offset > 0
    loaded = read_archive(data)
    assert loaded.names == ["x.png"]
    assert len(loaded.entries) == 2
    assert loaded.entries[0].name is loaded.entries[1].name
    assert [e.header.next_offset for e in loaded.entries] == [
        first.header.next_offset, 0]


def test_end_instruction_written_without_params():
    archive = Archive()
    entry = make_v8_entry(archive, with_data=False)
    entry.scripts = [Script(id=0, instructions=[
        Instruction(type=0xFFFF, time=1, params=b"\x01\x02\x03\x04")])]
    data = serialize_archive(archive)
    loaded = read_archive(data)
    assert loaded.entries[0].scripts[0].instructions == []
    assert b"\x01\x02\x03\x04" not in data[entry.scripts[0].offset:]


def test_intern_name_returns_stored_string():
    archive = Archive()
    first = archive.intern_name("".join(["a", "b"]))
    again = archive.intern_name("ab")
    assert again is first
    assert archive.names == ["ab"]


def test_entries_named_filters_in_order():
    archive = Archive()
    a1 = make_v8_entry(archive, name="a.png")
    make_v8_entry(archive, name="b.png")
    a2 = make_v8_entry(archive, name="a.png")
    assert archive.entries_named("a.png") == [a1, a2]
    assert archive.entries_named("missing.png") == []


def test_save_and_load(tmp_path):
    archive = Archive()
    make_v8_entry(archive)
    make_v8_entry(archive, name="other.png", with_data=False)
    path = tmp_path / "out.anm"
    save_archive(archive, path)
    loaded = load_archive(path)
    assert loaded.entries == archive.entries
    assert loaded.names == archive.names


def test_bad_version_rejected():
    archive = Archive()
    make_v8_entry(archive)
    data = bytearray(serialize_archive(archive))
    data[0:4] = struct.pack("<I", 5)
    with pytest.raises(AnmError):
        read_archive(bytes(data))


def test_truncated_archive_rejected():
    archive = Archive()
    make_v8_entry(archive)
    data = serialize_archive(archive)
    with pytest.raises(AnmError):
        read_archive(data[:40])


def test_bad_texture_magic_rejected():
    archive = Archive()
    make_v8_entry(archive)
    data = serialize_archive(archive).replace(b"THTX", b"XXXX")
    with pytest.raises(AnmError):
        read_archive(data)


def test_texture_too_small_rejected():
    archive = Archive()
    entry = make_v8_entry(archive)
    entry.thtx.size = 8
    entry.data = bytearray(8)
    with pytest.raises(AnmError):
        read_archive(serialize_archive(archive))


def test_v0_oversized_params_rejected():
    archive = Archive()
    entry = make_v0_entry(archive)
    entry.scripts[0].instructions.append(Instruction(type=3, time=1, params=bytes(256)))
    with pytest.raises(AnmError):
        serialize_archive(archive)


def test_sprite_floats_round_trip_exactly():
    archive = Archive()
    entry = make_v8_entry(archive, with_data=False)
    entry.sprites = [Sprite(9, 0.25, 1.5, 100.0, 0.125)]
    loaded = read_archive(serialize_archive(archive))
    assert loaded.entries[0].sprites == [Sprite(9, 0.25, 1.5, 100.0, 0.125)]
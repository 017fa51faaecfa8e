# anmkit

Work with ANM archives: the sprite, animation-script and texture containers
used by a family of shoot-'em-up games. `anmkit` lists an archive as a
plain-text spec, writes its textures out as PNG files, patches edited PNGs
back into an archive, and builds a new archive from a spec plus PNG images.

## Installing

    pip install .

Pillow is the only runtime dependency. To run the tests:

    pip install .[test]
    pytest

## Command line

    anmkit -l [VERSION] ARCHIVE     print the archive as a spec
    anmkit -x ARCHIVE [NAME...]     extract textures as PNG files
    anmkit -r ARCHIVE NAME FILE     replace one texture in the archive file
    anmkit -c ARCHIVE SPEC          create an archive from a spec
    anmkit -V                       show the version and exit
    anmkit -f                       with -x, report texture errors and go on

Exactly one of `-l`, `-x`, `-r` and `-c` must be given; flags may be
combined (`-fx`). On a malformed command line the usage text is printed and
the exit status is 1.

`VERSION` matters only for games `18`, `185` and `19`, whose instruction
tables differ; listing with one of these requires every entry to be of
header version 8. The other supported game numbers (6 to 17, 95, 103, 125,
128, 143, 165) are accepted and treated alike, and `VERSION` may be left out
for them. Any other number is rejected.

`-x` writes each texture to a PNG at the path given by its name in the
archive, creating directories as needed, and prints each name. With no
names, every texture in the archive is extracted. Pixels that no entry
covers come out as `0xff` bytes.

`-r` overwrites the texture bytes in the archive file in place; the archive
is not otherwise rewritten.

`-c` reads every texture named in the spec from a PNG at that same path,
relative to the current directory. The PNG's width and height must equal the
bounding size of all entries sharing the name (the largest offset plus
texture size, in each direction).

A typical round trip:

    anmkit -l 18 title.anm > title.txt
    anmkit -x title.anm
    # edit the PNG files, keeping their sizes
    anmkit -c title-new.anm title.txt

## Library

```python
from anmkit.archive import load_archive, save_archive
from anmkit.spec import dump_spec, parse_spec
from anmkit.textures import extract_image, replace_image
from anmkit.pixels import read_png, write_png

archive = load_archive("title.anm")
print(dump_spec(archive, 0))

for name in archive.names:
    image = extract_image(archive, name)
    if image is not None:
        write_png(name + ".png", image)
```

- `anmkit.pixels`: the texture formats (`TextureFormat`: `BGRA8888`,
  `RGB565`, `ARGB4444`, `GRAY8` and the internal `RGBA8888`),
  `bytes_per_pixel`, `to_rgba` and `from_rgba`, and `read_png` /
  `write_png` working on `Image` objects.
- `anmkit.opcodes`: the per-header-version instruction parameter tables
  (`opcode_table`, `find_format`), `decode_params` and `param_text`.
- `anmkit.archive`: the data model (`Archive`, `Entry`, `Header`, `Sprite`,
  `Script`, `Instruction`, `Thtx`) and the binary format (`read_archive`,
  `serialize_archive`, `load_archive`, `save_archive`). Header versions
  0, 2, 3, 4, 7 and 8 are supported.
- `anmkit.spec`: `dump_spec` turns an archive into spec text and
  `parse_spec` builds an archive from it; texture data is left empty.
  Warnings about outdated field names go to the `logging` module.
- `anmkit.textures`: `total_size`, `extract_image`, `replace_image` (in
  memory) and `patch_file` (directly in an archive file).
- `anmkit.cli`: `main` and `normalize_version`.

Malformed input raises `AnmError`, `SpecError`, `TextureError` or
`UnknownOpcodeError` (an unknown pixel format raises `ValueError`) rather
than exiting.

## What it does not do

Only PNG images are read and written, and only ANM archives are handled:
no other game file types, and no editing of scripts beyond what the spec
text carries.
"""Command line: list, extract, replace and create ANM archives."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence

from .archive import Archive, load_archive, save_archive
from .pixels import read_png, write_png
from .spec import dump_spec, parse_spec
from .textures import (
    TextureError,
    extract_image,
    patch_file,
    replace_image,
    total_size,
)

PROG = "anmkit"
VERSION = "1.0"

USAGE = f"""Usage: {PROG} [-Vf] [-l | -x | -r | -c] ARCHIVE ...
Options:
  -l [VERSION] ARCHIVE  list archive
  -x ARCHIVE [FILE...]  extract entries
  -r ARCHIVE NAME FILE  replace entry in archive
  -c ARCHIVE SPEC       create archive
  -V                    display version information and exit
  -f                    ignore errors when possible
VERSION can be:
  18, 185 or 19
For older games, VERSION can be omitted.
"""

_PATCHED_GAMES = frozenset({18, 185, 19})
_PLAIN_GAMES = frozenset({
    17, 165, 16, 15, 143, 14, 13, 128, 125, 12, 11, 103, 10, 95, 9, 8, 7, 6,
})


class _UsageError(Exception):
    """The command line is malformed; the usage text should be shown."""


@dataclass
class _Options:
    mode: Optional[str] = None
    force: bool = False
    show_version: bool = False
    args: list[str] = field(default_factory=list)


def normalize_version(text: str) -> int:
    """Map a game version to the instruction-set version used for listing.

    Games with patched instruction sets keep their number; other supported
    games map to 0.
    """
    try:
        version = int(text.strip())
    except ValueError:
        raise ValueError(f"version {text} is unsupported") from None
    if version in _PATCHED_GAMES:
        return version
    if version in _PLAIN_GAMES:
        return 0
    raise ValueError(f"version {version} is unsupported")


def _parse_args(argv: Sequence[str]) -> _Options:
    options = _Options()
    options_done = False
    for arg in argv:
        if not options_done and arg == "--":
            options_done = True
            continue
        if options_done or not arg.startswith("-") or arg == "-":
            options.args.append(arg)
            continue
        for flag in arg[1:]:
            if flag in "lxrc":
                if options.mode is not None:
                    raise _UsageError("More than one mode specified")
                options.mode = flag
            elif flag == "f":
                options.force = True
            elif flag == "V":
                options.show_version = True
            else:
                raise _UsageError(f"unknown option -- '{flag}'")
    return options


def _error(message: str) -> None:
    print(f"{PROG}: {message}", file=sys.stderr)


def _list(options: _Options) -> int:
    args = options.args
    if len(args) not in (1, 2):
        raise _UsageError()
    version = normalize_version(args[0]) if len(args) == 2 else 0
    archive = load_archive(args[-1])
    sys.stdout.write(dump_spec(archive, version))
    return 0


def _extract_one(archive: Archive, name: str, force: bool) -> None:
    print(name)
    try:
        image = extract_image(archive, name)
    except TextureError as exc:
        if not force:
            raise
        _error(str(exc))
        return
    if image is None:
        return
    path = Path(name)
    path.parent.mkdir(parents=True, exist_ok=True)
    write_png(path, image)


def _extract(options: _Options) -> int:
    args = options.args
    if not args:
        raise _UsageError()
    source = args[0]
    archive = load_archive(source)
    if len(args) == 1:
        for name in archive.names:
            _extract_one(archive, name, options.force)
    else:
        for wanted in args[1:]:
            if wanted in archive.names:
                _extract_one(archive, wanted, options.force)
            else:
                _error(f"{source}: {wanted} not found in archive")
    return 0


def _replace(options: _Options) -> int:
    args = options.args
    if len(args) != 3:
        raise _UsageError()
    source, name, image_path = args
    archive = load_archive(source)
    if name not in archive.names:
        _error(f"{source}: {name} not found in archive")
        return 0
    if total_size(archive, name) == (0, 0):
        return 0
    patch_file(source, archive, name, read_png(image_path))
    return 0


def _create(options: _Options) -> int:
    args = options.args
    if len(args) != 2:
        raise _UsageError()
    target, spec_path = args
    text = Path(spec_path).read_text(encoding="utf-8", errors="surrogateescape")
    archive = parse_spec(text, spec_path)

    for entry in archive.entries:
        if entry.header.has_data:
            entry.data = bytearray(entry.thtx.size)

    for name in archive.names:
        if total_size(archive, name) == (0, 0):
            continue
        replace_image(archive, name, read_png(name))

    save_archive(archive, target)
    return 0


_MODES: dict[str, Callable[[_Options], int]] = {
    "l": _list,
    "x": _extract,
    "r": _replace,
    "c": _create,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command line; returns the exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        options = _parse_args(args)
    except _UsageError as exc:
        _error(str(exc))
        sys.stdout.write(USAGE)
        return 1

    if options.show_version:
        print(f"{PROG} {VERSION}")
        return 0

    handler = _MODES.get(options.mode or "")
    if handler is None:
        sys.stdout.write(USAGE)
        return 1

    try:
        return handler(options)
    except _UsageError:
        sys.stdout.write(USAGE)
        return 1
    except (OSError, ValueError, LookupError) as exc:
        _error(str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
"""
WAD Reader — read lumps from Quake WAD2 texture archives.

WAD2 Layout (little-endian):
    Header (12 bytes):
        char magic[4]          'WAD2'
        u32  entry_count
        u32  directory_offset  (from the start of the archive)
    Directory entry (32 bytes each):
        u32  offset            (from the start of the archive)
        u32  length
        u32  uncompressed_length
        u8   kind              (see lump_reader.LumpKind)
        u8   compression       (0; nothing else is supported)
        u16  padding
        char name[16]

Usage:
    wad = WADReader("gfx.wad")
    for name, entry in wad.directory.items():
        lump = wad.parse_inferred(entry)
        print(name, lump.kind.name)
"""
from __future__ import annotations

import io
import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, List, Union

import numpy as np

from lump_reader import (
    PALETTE_SIZE,
    Image,
    Lump,
    LumpKind,
    MipTexture,
    parse_image as _parse_image,
    parse_mip_texture as _parse_mip_texture,
    parse_palette as _parse_palette,
    read_exact,
    read_name,
    read_raw as _read_raw,
)
from qmap_errors import BinaryParseError

logger = logging.getLogger(__name__)

WAD_MAGIC = b'WAD2'
HEADER_SIZE = 12
ENTRY_SIZE = 32

# Stored as a mip texture in the stock gfx.wad, but it's a raw 128×128 flat
CONCHARS_NAME = 'CONCHARS'


@dataclass
class WADEntry:
    """A single lump entry in the WAD directory."""
    name: str
    offset: int
    length: int
    kind: LumpKind


def lump_kind_candidates(entry: WADEntry) -> List[LumpKind]:
    """Lump kinds to try for `entry`, most likely first."""
    if entry.name == CONCHARS_NAME and entry.kind != LumpKind.FLAT:
        return [LumpKind.FLAT, entry.kind]
    return [entry.kind]


class WADReader:
    """Read-only interface to a WAD2 archive.

    Parses the directory on construction; lump data is read on demand and
    each decoder only sees the entry's own `length` bytes. Duplicate entry
    names keep the first entry and add a message to `warnings`.
    """

    def __init__(self, source: Union[str, Path, BinaryIO]):
        if isinstance(source, (str, Path)):
            self.filepath = Path(source)
            self._stream: BinaryIO = io.BytesIO(self.filepath.read_bytes())
        else:
            self.filepath = None
            self._stream = source

        self._start = self._stream.tell()
        self._entries: Dict[str, WADEntry] = {}
        self.warnings: List[str] = []

        self._parse_dir()

    def _parse_dir(self) -> None:
        """Parse the WAD header and directory."""
        header = read_exact(self._stream, HEADER_SIZE)
        magic, entry_count, dir_offset = struct.unpack('<4sII', header)
        if magic != WAD_MAGIC:
            raise BinaryParseError(
                f"Magic number does not match `{WAD_MAGIC.decode()}`")

        self._stream.seek(self._start + dir_offset)
        for _ in range(entry_count):
            raw = read_exact(self._stream, ENTRY_SIZE)
            (offset, length, _uncompressed, kind, compression,
             _padding, name_raw) = struct.unpack('<IIIBBH16s', raw)

            if compression != 0:
                raise BinaryParseError("Compression is unsupported")
            try:
                kind = LumpKind(kind)
            except ValueError:
                raise BinaryParseError(
                    f"Unexpected lump type `{kind:#04x}`") from None

            name = read_name(name_raw)
            if name in self._entries:
                msg = f"Duplicate entry `{name}`, keeping the first"
                logger.warning(msg)
                self.warnings.append(msg)
                continue

            self._entries[name] = WADEntry(name, offset, length, kind)

        logger.debug("Read %d WAD entries", len(self._entries))

    @property
    def directory(self) -> Dict[str, WADEntry]:
        return dict(self._entries)

    def get(self, name: str) -> WADEntry:
        return self._entries[name]

    def read_raw(self, entry: WADEntry) -> bytes:
        """Get the entry's `length` bytes, undecoded."""
        self._stream.seek(self._start + entry.offset)
        return _read_raw(self._stream, entry.length)

    def _lump_stream(self, entry: WADEntry) -> BinaryIO:
        # Decoders only ever see the entry's own bytes
        return io.BytesIO(self.read_raw(entry))

    def parse_image(self, entry: WADEntry) -> Image:
        return _parse_image(self._lump_stream(entry))

    def parse_mip_texture(self, entry: WADEntry) -> MipTexture:
        return _parse_mip_texture(self._lump_stream(entry))

    def parse_palette(self, entry: WADEntry) -> np.ndarray:
        if entry.length != PALETTE_SIZE:
            raise BinaryParseError(
                f"Palette must be {PALETTE_SIZE} bytes long, "
                f"`{entry.name}` is {entry.length}")
        return _parse_palette(self._lump_stream(entry))

    def parse_as(self, entry: WADEntry, kind: LumpKind) -> Lump:
        """Decode `entry` as `kind`, whatever its directory entry says."""
        if kind == LumpKind.PALETTE:
            return Lump(kind, self.parse_palette(entry))
        if kind == LumpKind.SBAR:
            return Lump(kind, self.parse_image(entry))
        if kind == LumpKind.MIPTEX:
            return Lump(kind, self.parse_mip_texture(entry))
        return Lump(kind, self.read_raw(entry))

    def parse_inferred(self, entry: WADEntry) -> Lump:
        """Decode `entry` as the first of its candidate kinds that works.

        If every candidate fails, the first candidate's error is raised.
        """
        first_error = None
        for kind in lump_kind_candidates(entry):
            try:
                return self.parse_as(entry, kind)
            except BinaryParseError as e:
                logger.debug("%s: not a %s lump (%s)", entry.name, kind.name, e)
                if first_error is None:
                    first_error = e
        raise first_error

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        name = self.filepath.name if self.filepath else "<stream>"
        return f"WADReader({name!r}, {len(self._entries)} entries)"

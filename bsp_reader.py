"""
BSP Reader — locate lumps in a compiled Quake level and parse its entities.

Supports BSP29 (version 29) and BSP2 (version field holds the bytes 'BSP2').

BSP Header Layout (124 bytes, little-endian):
    u32 version
    15 × (u32 fileofs, u32 filelen)   lump directory

Lump offsets are relative to the start of the header, which need not be the
start of the stream (a BSP can be embedded in a PAK file).

The entities lump (0) is .map-style text without brushes, usually ending in
a null byte. parse_entities() stops at the first null and hands the text to
the map parser.

Usage:
    bsp = BSPReader("maps/e1m1.bsp")
    qmap = bsp.parse_entities()
    has_vis = not bsp.lump_empty(BSPLump.VISIBILITY)
"""
from __future__ import annotations

import enum
import io
import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, List, Union

from lump_reader import read_exact
from qmap_errors import BinaryParseError, MapParseError
from qmap_model import QuakeMap
from qmap_parser import parse

logger = logging.getLogger(__name__)


# ─── BSP Constants ────────────────────────────────────────────────────────────

BSP_VERSION = 29
BSP2_VERSION = struct.unpack('<I', b'BSP2')[0]
HEADER_LUMPS = 15
HEADER_SIZE = 4 + HEADER_LUMPS * 8


class BSPLump(enum.IntEnum):
    ENTITIES = 0
    PLANES = 1
    TEXTURES = 2
    VERTEXES = 3
    VISIBILITY = 4
    NODES = 5
    TEXINFO = 6
    FACES = 7
    LIGHTING = 8
    CLIPNODES = 9
    LEAFS = 10
    MARKSURFACES = 11
    EDGES = 12
    SURFEDGES = 13
    MODELS = 14


@dataclass
class BSPLumpEntry:
    """Lump descriptor from the header."""
    fileofs: int
    filelen: int


class BSPReader:
    """Reads the lump directory of a BSP and extracts lumps on demand."""

    def __init__(self, source: Union[str, Path, BinaryIO]):
        if isinstance(source, (str, Path)):
            self.filepath = Path(source)
            self._stream: BinaryIO = io.BytesIO(self.filepath.read_bytes())
        else:
            self.filepath = None
            self._stream = source

        self._start = self._stream.tell()
        header = read_exact(self._stream, HEADER_SIZE)

        self._version = struct.unpack_from('<I', header, 0)[0]
        if self._version not in (BSP_VERSION, BSP2_VERSION):
            raise BinaryParseError(
                f"Unrecognized BSP version {self._version} "
                f"({struct.pack('<I', self._version)!r})")

        self._lumps: List[BSPLumpEntry] = []
        for i in range(HEADER_LUMPS):
            fileofs, filelen = struct.unpack_from('<II', header, 4 + i * 8)
            self._lumps.append(BSPLumpEntry(fileofs, filelen))

    @property
    def version(self) -> int:
        return self._version

    @property
    def is_bsp2(self) -> bool:
        return self._version == BSP2_VERSION

    def lump_entry(self, lump: BSPLump) -> BSPLumpEntry:
        return self._lumps[lump]

    def lump_empty(self, lump: BSPLump) -> bool:
        return self._lumps[lump].filelen == 0

    def read_lump(self, lump: BSPLump) -> bytes:
        """Get raw bytes for a lump."""
        entry = self._lumps[lump]
        self._stream.seek(self._start + entry.fileofs)
        return read_exact(self._stream, entry.filelen)

    def parse_entities(self) -> QuakeMap:
        """Parse the entities lump into a QuakeMap (entities, no brushes).

        Map syntax errors are reported as BinaryParseError; I/O errors from
        the underlying stream propagate unchanged.
        """
        text = self.read_lump(BSPLump.ENTITIES)
        end = text.find(b'\x00')
        if end != -1:
            text = text[:end]

        try:
            qmap = parse(io.BytesIO(text))
        except MapParseError as e:
            raise BinaryParseError(f"Entities lump: {e}") from e

        logger.debug("Read %d entities from %s", len(qmap.entities),
                     self.filepath or "<stream>")
        return qmap

    def __repr__(self) -> str:
        name = self.filepath.name if self.filepath else "<stream>"
        return f"BSPReader({name!r}, version={self._version})"

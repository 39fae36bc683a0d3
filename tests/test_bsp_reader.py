"""Tests for the BSP lump directory reader."""

import io
import struct

import pytest

from bsp_reader import (
    BSP2_VERSION,
    BSP_VERSION,
    HEADER_LUMPS,
    HEADER_SIZE,
    BSPLump,
    BSPReader,
)
from qmap_errors import BinaryParseError, UnexpectedEOFError

# ###############
# Test Helpers
# ###############

ENTITIES = b"""
{
    "classname" "func_door"
    "model" "*37"
}"""


def bsp_bytes(version=BSP_VERSION, lumps=None) -> bytes:
    """Build a BSP with the given {BSPLump: data} laid out after the header."""
    lumps = lumps or {}
    entries = []
    body = b''
    for index in range(HEADER_LUMPS):
        data = lumps.get(BSPLump(index), b'')
        entries.append((HEADER_SIZE + len(body) if data else 0, len(data)))
        body += data

    header = struct.pack('<I', version)
    for offset, length in entries:
        header += struct.pack('<II', offset, length)
    return header + body


# ###############
# Header
# ###############


class TestHeader:
    def test_header_size(self) -> None:
        assert HEADER_SIZE == 124
        assert BSP2_VERSION == struct.unpack('<I', b'BSP2')[0]

    def test_bsp29(self) -> None:
        bsp = BSPReader(io.BytesIO(bsp_bytes()))
        assert bsp.version == 29
        assert not bsp.is_bsp2

    def test_bsp2(self) -> None:
        bsp = BSPReader(io.BytesIO(bsp_bytes(version=BSP2_VERSION)))
        assert bsp.is_bsp2

    def test_bad_version(self) -> None:
        with pytest.raises(BinaryParseError, match="Unrecognized BSP version"):
            BSPReader(io.BytesIO(bsp_bytes(version=30)))

    def test_short_header(self) -> None:
        with pytest.raises(UnexpectedEOFError):
            BSPReader(io.BytesIO(bsp_bytes()[:HEADER_SIZE - 1]))

    def test_from_file(self, tmp_path) -> None:
        path = tmp_path / "start.bsp"
        path.write_bytes(bsp_bytes(lumps={BSPLump.ENTITIES: ENTITIES + b'\x00'}))
        bsp = BSPReader(path)
        assert bsp.filepath == path
        assert len(bsp.parse_entities().entities) == 1
        assert 'start.bsp' in repr(bsp)


# ###############
# Lumps
# ###############


class TestLumps:
    def test_lump_entries(self) -> None:
        models = bytes(123)
        bsp = BSPReader(io.BytesIO(bsp_bytes(
            version=BSP2_VERSION,
            lumps={BSPLump.ENTITIES: ENTITIES + b'\x00', BSPLump.MODELS: models})))

        assert bsp.lump_entry(BSPLump.ENTITIES).fileofs == HEADER_SIZE
        assert bsp.lump_entry(BSPLump.MODELS).filelen == 123
        assert not bsp.lump_empty(BSPLump.ENTITIES)
        assert bsp.lump_empty(BSPLump.NODES)
        assert bsp.read_lump(BSPLump.MODELS) == models

    def test_truncated_lump(self) -> None:
        data = bsp_bytes(lumps={BSPLump.LIGHTING: bytes(64)})
        bsp = BSPReader(io.BytesIO(data[:-1]))
        with pytest.raises(UnexpectedEOFError):
            bsp.read_lump(BSPLump.LIGHTING)

    def test_offsets_relative_to_start(self) -> None:
        stream = io.BytesIO(b'PACKHEADER' + bsp_bytes(
            lumps={BSPLump.VISIBILITY: b'visdata'}))
        stream.seek(10)
        bsp = BSPReader(stream)
        assert bsp.read_lump(BSPLump.VISIBILITY) == b'visdata'


# ###############
# Entities
# ###############


class TestEntities:
    def test_parse_entities(self) -> None:
        bsp = BSPReader(io.BytesIO(bsp_bytes(
            lumps={BSPLump.ENTITIES: ENTITIES + b'\x00'})))
        qmap = bsp.parse_entities()
        assert len(qmap.entities) == 1
        edict = qmap.entities[0].edict
        assert edict[b'classname'] == b'func_door'
        assert edict[b'model'] == b'*37'

    def test_empty_entities(self) -> None:
        bsp = BSPReader(io.BytesIO(bsp_bytes()))
        assert bsp.parse_entities().entities == []

    def test_null_ends_text(self) -> None:
        lump = ENTITIES + b'\x00{ "garbage'
        bsp = BSPReader(io.BytesIO(bsp_bytes(lumps={BSPLump.ENTITIES: lump})))
        assert len(bsp.parse_entities().entities) == 1

    def test_lump_without_null(self) -> None:
        bsp = BSPReader(io.BytesIO(bsp_bytes(lumps={BSPLump.ENTITIES: ENTITIES})))
        assert len(bsp.parse_entities().entities) == 1

    def test_bad_entities(self) -> None:
        bsp = BSPReader(io.BytesIO(bsp_bytes(lumps={BSPLump.ENTITIES: b'{\x00'})))
        with pytest.raises(BinaryParseError, match="Entities lump"):
            bsp.parse_entities()

"""
Lump Reader — decode Quake data lumps, from a WAD archive or as loose files.

Lump kinds (the type byte of a WAD2 directory entry):

    0x40  PALETTE  768 bytes: 256 packed RGB colors
    0x42  SBAR     u32 width, u32 height, width*height palette indices
    0x44  MIPTEX   40-byte head + four mip levels of palette indices
    0x45  FLAT     raw bytes, no header (CONCHARS, CONBACK, ...)

Mip texture head (40 bytes, little-endian):
    char name[16]
    u32  width, height      (multiples of 8)
    u32  offsets[4]         (from the start of the head, one per mip level)

Pixels are returned as numpy uint8 arrays of shape (height, width) holding
palette indices; Image.to_rgb() maps them through a palette.

Usage:
    with open("gfx/palette.lmp", "rb") as f:
        palette = parse_palette(f)
    with open("wall.mip", "rb") as f:
        tex = parse_mip_texture(f)
    rgb = tex.mip(0).to_rgb(palette)   # (h, w, 3) uint8
"""
from __future__ import annotations

import enum
import struct
from collections import namedtuple
from dataclasses import dataclass
from typing import BinaryIO, List

import numpy as np

from qmap_errors import BinaryParseError, UnexpectedEOFError

PALETTE_SIZE = 256 * 3
MIPTEX_HEAD_SIZE = 40
MIP_LEVELS = 4
U32_MAX = 0xFFFFFFFF


class LumpKind(enum.IntEnum):
    PALETTE = 0x40
    SBAR = 0x42
    MIPTEX = 0x44
    FLAT = 0x45


# kind: LumpKind, data: palette array, Image, MipTexture or raw bytes
Lump = namedtuple('Lump', ['kind', 'data'])


@dataclass
class Image:
    """A paletted image: `pixels` is (height, width) uint8 palette indices."""
    width: int
    height: int
    pixels: np.ndarray

    @classmethod
    def from_pixels(cls, width: int, data: bytes) -> Image:
        """Build an image from row-major pixel bytes; height is implied."""
        if width == 0:
            if data:
                raise BinaryParseError("Pixel data for a zero-width image")
            return cls(0, 0, np.zeros((0, 0), dtype=np.uint8))
        if len(data) % width != 0:
            raise BinaryParseError(
                f"Pixel count {len(data)} is not a multiple of width {width}")
        height = len(data) // width
        pixels = np.frombuffer(data, dtype=np.uint8).reshape(height, width)
        return cls(width, height, pixels)

    def to_rgb(self, palette: np.ndarray) -> np.ndarray:
        """Map palette indices to colors; returns (height, width, 3) uint8."""
        return palette[self.pixels]


@dataclass
class MipTexture:
    """A texture and its three downscaled mip levels."""
    name: str
    mips: List[Image]

    def __post_init__(self):
        if len(self.mips) != MIP_LEVELS:
            raise BinaryParseError(
                f"Expected {MIP_LEVELS} mip levels, got {len(self.mips)}")
        for larger, smaller in zip(self.mips, self.mips[1:]):
            if (larger.width != smaller.width * 2
                    or larger.height != smaller.height * 2):
                raise BinaryParseError("Bad mipmaps")

    def mip(self, index: int) -> Image:
        if not 0 <= index < MIP_LEVELS:
            raise IndexError(f"Outside mip bounds ([0..{MIP_LEVELS}])")
        return self.mips[index]

    @property
    def width(self) -> int:
        return self.mips[0].width

    @property
    def height(self) -> int:
        return self.mips[0].height


def read_exact(stream: BinaryIO, length: int) -> bytes:
    """Read exactly `length` bytes or raise UnexpectedEOFError."""
    data = stream.read(length)
    if len(data) != length:
        raise UnexpectedEOFError(
            f"Expected {length} bytes, stream ended after {len(data)}")
    return data


def read_name(raw: bytes) -> str:
    """Decode a fixed-size, null-padded name field."""
    end = raw.find(b'\x00')
    if end != -1:
        raw = raw[:end]
    return raw.decode('ascii', errors='replace')


# ─── Lump Parsers ─────────────────────────────────────────────────────────────

def parse_mip_texture(stream: BinaryIO) -> MipTexture:
    """Read a mip texture starting at the stream's current position."""
    lump_start = stream.tell()
    head = read_exact(stream, MIPTEX_HEAD_SIZE)
    name_raw, width, height = struct.unpack_from('<16sII', head, 0)
    offsets = struct.unpack_from('<4I', head, 24)

    if width % 8 != 0:
        raise BinaryParseError(f"Invalid width {width}")
    if height % 8 != 0:
        raise BinaryParseError(f"Invalid height {height}")
    if width * height > U32_MAX:
        raise BinaryParseError("Texture too large")

    mips = []
    for level, offset in enumerate(offsets):
        length = (width * height) >> (level * 2)
        stream.seek(lump_start + offset)
        mips.append(Image.from_pixels(width >> level,
                                      read_exact(stream, length)))

    return MipTexture(name=read_name(name_raw), mips=mips)


def parse_palette(stream: BinaryIO) -> np.ndarray:
    """Read a 256-color palette as a (256, 3) uint8 array."""
    data = read_exact(stream, PALETTE_SIZE)
    return np.frombuffer(data, dtype=np.uint8).reshape(256, 3).copy()


def parse_image(stream: BinaryIO) -> Image:
    """Read a status-bar style image: u32 width, u32 height, pixels."""
    width, height = struct.unpack('<II', read_exact(stream, 8))
    if width * height > U32_MAX:
        raise BinaryParseError("Image too large")
    return Image.from_pixels(width, read_exact(stream, width * height))


def read_raw(stream: BinaryIO, length: int) -> bytes:
    """Read a headerless lump of `length` bytes."""
    return read_exact(stream, length)

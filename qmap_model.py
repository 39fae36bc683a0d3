"""
Quake MAP document model and writability checks.

A map is a list of entities. Each entity has an edict (its key/value
properties) and zero or more brushes; each brush is a list of surfaces:

    {
    "classname" "worldspawn"
    "wad" "gfx/base.wad"
    {
    ( -64 -64 -16 ) ( -64 -63 -16 ) ( -64 -64 -15 ) GROUND1_6 0 0 0 1 1
    ( 64 64 16 ) ( 64 64 17 ) ( 64 65 16 ) GROUND1_6 [ 1 0 0 0 ] [ 0 -1 0 0 ] 0 1 1
    ...
    }
    }

Edict keys and values are raw bytes (the format has no declared encoding).
A surface's texture alignment is either the legacy five-number form or the
Valve220 form with explicit texture axes; both are one Alignment value,
distinguished only by whether `axes` is set.

The model carries no line numbers and no references to the tokens that
produced it. check_writable() walks a node depth-first and raises
MapValidationError with the first value that has no lossless text form.
"""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Union

from qmap_errors import MapValidationError

Vec2 = Tuple[float, float]
Vec3 = Tuple[float, float, float]
Point = Vec3
HalfSpace = Tuple[Point, Point, Point]

# Edict: classname → worldspawn, origin → "0 0 24", ...
Edict = Dict[bytes, bytes]

# Bytes that can't appear between the quotes of a quoted string. Null can't
# appear anywhere: the tokenizer rejects it.
QUOTED_FORBIDDEN = b'"\r\n\x00'

# Matches the tokenizer's separator set
ASCII_WHITESPACE = b' \t\n\x0c\r'


class EntityKind(enum.Enum):
    POINT = 'point'
    BRUSH = 'brush'


@dataclass
class Alignment:
    """Texture alignment of one surface.

    `offset`, `rotation` and `scale` are present in both dialects. `axes`
    holds the (u, v) texture axes of the Valve220 dialect, or None for the
    legacy dialect where the axes are implied by the surface plane.
    """
    offset: Vec2 = (0.0, 0.0)
    rotation: float = 0.0
    scale: Vec2 = (1.0, 1.0)
    axes: Optional[Tuple[Vec3, Vec3]] = None

    @property
    def is_axis_aligned(self) -> bool:
        return self.axes is not None

    def check_writable(self) -> None:
        _check_finite_all(self.offset)
        _check_finite(self.rotation)
        _check_finite_all(self.scale)
        if self.axes is not None:
            for axis in self.axes:
                _check_finite_all(axis)


@dataclass
class Surface:
    """One face of a brush: a half-space, a texture name and its alignment.

    The three points are wound so the plane normal faces out of the brush.
    """
    half_space: HalfSpace
    texture: bytes
    alignment: Alignment = field(default_factory=Alignment)

    def check_writable(self) -> None:
        for point in self.half_space:
            _check_finite_all(point)
        check_writable_texture(self.texture)
        self.alignment.check_writable()


@dataclass
class Brush:
    """A convex volume bounded by its surfaces.

    The parser accepts any number of surfaces; compilers want at least 4.
    """
    surfaces: List[Surface] = field(default_factory=list)

    def __iter__(self):
        return iter(self.surfaces)

    def __len__(self) -> int:
        return len(self.surfaces)

    def check_writable(self) -> None:
        for surface in self.surfaces:
            surface.check_writable()


@dataclass
class Entity:
    """A property dictionary plus the brushes that give it volume."""
    edict: Edict = field(default_factory=dict)
    brushes: List[Brush] = field(default_factory=list)

    @property
    def kind(self) -> EntityKind:
        return EntityKind.BRUSH if self.brushes else EntityKind.POINT

    @property
    def classname(self) -> Optional[bytes]:
        return self.edict.get(b'classname')

    def check_writable(self) -> None:
        check_writable_edict(self.edict)
        for brush in self.brushes:
            brush.check_writable()


@dataclass
class QuakeMap:
    """An ordered list of entities; the first is normally worldspawn."""
    entities: List[Entity] = field(default_factory=list)

    def entities_by_class(self, classname: Union[str, bytes]) -> List[Entity]:
        """Get all entities whose classname equals `classname`."""
        if isinstance(classname, str):
            classname = classname.encode('latin-1')
        return [e for e in self.entities if e.classname == classname]

    @property
    def worldspawn(self) -> Optional[Entity]:
        found = self.entities_by_class(b'worldspawn')
        return found[0] if found else None

    def check_writable(self) -> None:
        for entity in self.entities:
            entity.check_writable()


Node = Union[QuakeMap, Entity, Brush, Surface, Alignment]


def check_writable(node: Union[Node, Edict]) -> None:
    """Raise MapValidationError if `node` can't be written without loss.

    Pure: nothing in the tree is modified, and repeated calls on an
    unchanged tree give the same outcome.
    """
    if isinstance(node, dict):
        check_writable_edict(node)
    else:
        node.check_writable()


def check_writable_edict(edict: Edict) -> None:
    for key, value in edict.items():
        check_writable_quoted(key)
        check_writable_quoted(value)


def check_writable_quoted(text: bytes) -> None:
    for byte in text:
        if byte in QUOTED_FORBIDDEN:
            raise MapValidationError(
                f"Cannot write quote-wrapped string, contains {chr(byte)!r}")


def check_writable_texture(texture: bytes) -> None:
    if texture_writes_unquoted(texture):
        return
    try:
        check_writable_quoted(texture)
    except MapValidationError:
        raise MapValidationError(
            f"Cannot write texture {texture!r}, neither quotable nor "
            f"writable bare") from None


def texture_writes_unquoted(texture: bytes) -> bool:
    """True when the texture name can be written bare, without quotes.

    A bare `/` would swallow the following separator and a bare `//...`
    would start a comment, so both are quoted.
    """
    return (bool(texture)
            and texture[0] != ord('"')
            and texture != b'/'
            and not texture.startswith(b'//')
            and 0 not in texture
            and not contains_ascii_whitespace(texture))


def contains_ascii_whitespace(text: bytes) -> bool:
    return any(byte in ASCII_WHITESPACE for byte in text)


def _check_finite(num: float) -> None:
    if not math.isfinite(num):
        raise MapValidationError(f"Non-finite number ({num})")


def _check_finite_all(nums: Iterable[float]) -> None:
    for num in nums:
        _check_finite(num)

"""
Quake MAP writer — serializes a QuakeMap (or any node of one) to .map text.

Output is canonical: CRLF line endings, one `{`/`}` per line around each
entity and brush, one edict pair or surface per line:

    {
    "classname" "worldspawn"
    {
    ( 0 0 0 ) ( 0 1 0 ) ( 1 0 0 ) BRICK 0 0 0 1 1
    ( 0 0 64 ) ( 1 0 64 ) ( 0 1 64 ) "sky 1" [ 1 0 0 0 ] [ 0 -1 0 0 ] 0 1 1
    }
    }

The whole node is validated and rendered before anything reaches the sink,
so a document that fails check_writable() produces zero output bytes.
"""
from __future__ import annotations

import math
from pathlib import Path
from typing import BinaryIO, List, Union

from qmap_errors import MapWriteError
from qmap_model import (
    Alignment,
    Brush,
    Edict,
    Entity,
    HalfSpace,
    QuakeMap,
    Surface,
    check_writable,
    texture_writes_unquoted,
)

WritableNode = Union[QuakeMap, Entity, Brush, Surface]

NEWLINE = b'\r\n'


class MapWriter:
    """Serializes the document model back to .map text."""

    def write_file(self, node: WritableNode, filepath: Union[str, Path]) -> None:
        """Write `node` to a file. Nothing is created if validation fails."""
        data = self.write_bytes(node)
        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        filepath.write_bytes(data)

    def write_to(self, node: WritableNode, sink: BinaryIO) -> None:
        """Validate `node`, then write it to `sink` in one write() call."""
        sink.write(self.write_bytes(node))

    def write_bytes(self, node: WritableNode) -> bytes:
        """Validate and serialize `node`. Raises MapValidationError."""
        check_writable(node)
        parts: List[bytes] = []
        if isinstance(node, QuakeMap):
            for entity in node.entities:
                self._write_entity(entity, parts)
        elif isinstance(node, Entity):
            self._write_entity(node, parts)
        elif isinstance(node, Brush):
            self._write_brush(node, parts)
        elif isinstance(node, Surface):
            self._write_surface(node, parts)
            parts.append(NEWLINE)
        else:
            raise MapWriteError(f"Cannot write {type(node).__name__}")
        return b''.join(parts)

    def _write_entity(self, entity: Entity, parts: List[bytes]) -> None:
        parts.append(b'{' + NEWLINE)
        self._write_edict(entity.edict, parts)
        for brush in entity.brushes:
            self._write_brush(brush, parts)
        parts.append(b'}' + NEWLINE)

    def _write_edict(self, edict: Edict, parts: List[bytes]) -> None:
        for key, value in edict.items():
            parts.append(b'"' + key + b'" "' + value + b'"' + NEWLINE)

    def _write_brush(self, brush: Brush, parts: List[bytes]) -> None:
        parts.append(b'{' + NEWLINE)
        for surface in brush.surfaces:
            self._write_surface(surface, parts)
            parts.append(NEWLINE)
        parts.append(b'}' + NEWLINE)

    def _write_surface(self, surface: Surface, parts: List[bytes]) -> None:
        parts.append(_format_half_space(surface.half_space))
        parts.append(b' ')
        parts.append(_format_texture(surface.texture))
        parts.append(b' ')
        parts.append(_format_alignment(surface.alignment))


def write_to(node: WritableNode, sink: BinaryIO) -> None:
    """Validate `node` and write it to `sink`; zero bytes on failure."""
    MapWriter().write_to(node, sink)


def format_number(num: float) -> str:
    """Shortest text that parses back to `num`; integral values lose '.0'."""
    num = float(num)
    if num == 0.0:
        return '-0' if math.copysign(1.0, num) < 0 else '0'
    if num.is_integer() and abs(num) < 1e16:
        return str(int(num))
    return repr(num)


def _format_half_space(half_space: HalfSpace) -> bytes:
    points = []
    for point in half_space:
        points.append('( ' + ' '.join(format_number(c) for c in point) + ' )')
    return ' '.join(points).encode('ascii')


def _format_texture(texture: bytes) -> bytes:
    if texture_writes_unquoted(texture):
        return texture
    return b'"' + texture + b'"'


def _format_alignment(alignment: Alignment) -> bytes:
    ox, oy = alignment.offset
    sx, sy = alignment.scale
    rot = alignment.rotation
    if alignment.axes is None:
        nums = (ox, oy, rot, sx, sy)
        return ' '.join(format_number(n) for n in nums).encode('ascii')

    u, v = alignment.axes
    text = (
        f"[ {' '.join(format_number(n) for n in (*u, ox))} ] "
        f"[ {' '.join(format_number(n) for n in (*v, oy))} ] "
        f"{format_number(rot)} {format_number(sx)} {format_number(sy)}"
    )
    return text.encode('ascii')

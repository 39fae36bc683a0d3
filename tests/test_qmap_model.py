"""Tests for the document model and writability checks."""

import copy
import math

import pytest

from qmap_errors import MapValidationError, MapWriteError
from qmap_model import (
    Alignment,
    Brush,
    Entity,
    EntityKind,
    QuakeMap,
    Surface,
    check_writable,
    texture_writes_unquoted,
)

# ###############
# Test Helpers
# ###############

HALF_SPACE = ((0.0, 0.0, 0.0), (0.0, 1.0, 0.0), (1.0, 0.0, 0.0))


def _surface(texture=b'BRICK', half_space=HALF_SPACE, alignment=None) -> Surface:
    return Surface(half_space=half_space, texture=texture,
                   alignment=alignment or Alignment())


def _map_with(edict=None, surface=None) -> QuakeMap:
    brushes = [Brush([surface])] if surface is not None else []
    return QuakeMap([Entity(edict=edict or {b'classname': b'worldspawn'},
                            brushes=brushes)])


# ###############
# Model
# ###############


class TestModel:
    def test_new_map_is_empty(self) -> None:
        assert QuakeMap().entities == []

    def test_entity_kind_is_derived(self) -> None:
        entity = Entity()
        assert entity.kind == EntityKind.POINT
        entity.brushes.append(Brush([_surface()]))
        assert entity.kind == EntityKind.BRUSH
        entity.brushes.clear()
        assert entity.kind == EntityKind.POINT

    def test_classname(self) -> None:
        assert Entity({b'classname': b'light'}).classname == b'light'
        assert Entity().classname is None

    def test_entities_by_class(self) -> None:
        lights = [Entity({b'classname': b'light'}) for _ in range(2)]
        qmap = QuakeMap([Entity({b'classname': b'worldspawn'}), *lights])
        assert qmap.entities_by_class('light') == lights
        assert qmap.entities_by_class(b'light') == lights
        assert qmap.entities_by_class('monster_army') == []

    def test_worldspawn_missing(self) -> None:
        assert QuakeMap([Entity({b'classname': b'light'})]).worldspawn is None

    def test_brush_iterates_surfaces(self) -> None:
        surfaces = [_surface(b'A'), _surface(b'B')]
        brush = Brush(surfaces)
        assert len(brush) == 2
        assert [s.texture for s in brush] == [b'A', b'B']

    def test_default_alignment_is_legacy(self) -> None:
        alignment = Alignment()
        assert alignment.axes is None
        assert alignment.scale == (1.0, 1.0)


# ###############
# Texture Quoting
# ###############


class TestTextureRules:
    @pytest.mark.parametrize("texture", [b'BRICK', b'*lava1', b'+0button', b'/HALF'])
    def test_bare_textures(self, texture) -> None:
        assert texture_writes_unquoted(texture)
        check_writable(_surface(texture))

    @pytest.mark.parametrize("texture", [b'', b'sky 1', b'a\tb', b'/', b'//sky'])
    def test_quoted_textures(self, texture) -> None:
        assert not texture_writes_unquoted(texture)
        check_writable(_surface(texture))

    def test_whitespace_and_quote_is_unwritable(self) -> None:
        with pytest.raises(MapValidationError, match="Cannot write texture"):
            check_writable(_surface(b'a "b'))

    def test_leading_quote_is_unwritable(self) -> None:
        assert not texture_writes_unquoted(b'"a')
        with pytest.raises(MapValidationError, match="Cannot write texture"):
            check_writable(_surface(b'"a'))

    def test_leading_quote_with_newline_is_unwritable(self) -> None:
        with pytest.raises(MapValidationError):
            check_writable(_surface(b'"\n'))

    def test_null_byte_texture_is_unwritable(self) -> None:
        with pytest.raises(MapValidationError):
            check_writable(_surface(b'A\x00B'))


# ###############
# check_writable
# ###############


class TestCheckWritable:
    def test_valid_map(self) -> None:
        qmap = _map_with(surface=_surface(alignment=Alignment(
            axes=((1.0, 0.0, 0.0), (0.0, -1.0, 0.0)))))
        assert check_writable(qmap) is None

    def test_empty_map(self) -> None:
        check_writable(QuakeMap())

    @pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
    def test_non_finite_point(self, bad) -> None:
        half_space = ((0.0, 0.0, bad), (0.0, 1.0, 0.0), (1.0, 0.0, 0.0))
        with pytest.raises(MapValidationError, match="finite"):
            check_writable(_map_with(surface=_surface(half_space=half_space)))

    def test_non_finite_alignment(self) -> None:
        alignment = Alignment(rotation=math.nan)
        with pytest.raises(MapValidationError, match="finite"):
            check_writable(_surface(alignment=alignment))

    def test_non_finite_axis(self) -> None:
        alignment = Alignment(axes=((1.0, 0.0, 0.0), (0.0, math.inf, 0.0)))
        with pytest.raises(MapValidationError, match="finite"):
            check_writable(Brush([_surface(alignment=alignment)]))

    @pytest.mark.parametrize("char", ['"', '\r', '\n'])
    def test_edict_value_forbidden_char(self, char) -> None:
        edict = {b'message': b'line one' + char.encode() + b'line two'}
        with pytest.raises(MapValidationError) as exc_info:
            check_writable(_map_with(edict=edict))
        assert repr(char) in str(exc_info.value)

    def test_edict_key_forbidden_char(self) -> None:
        with pytest.raises(MapValidationError) as exc_info:
            check_writable(Entity({b'bad\nkey': b'value'}))
        assert repr('\n') in str(exc_info.value)

    def test_edict_directly(self) -> None:
        check_writable({b'classname': b'light'})
        with pytest.raises(MapValidationError):
            check_writable({b'"': b''})

    def test_validation_error_is_write_error(self) -> None:
        with pytest.raises(MapWriteError):
            check_writable({b'\r': b''})

    def test_pure(self) -> None:
        qmap = _map_with(edict={b'classname': b'worldspawn', b'bad': b'"'},
                         surface=_surface())
        before = copy.deepcopy(qmap)
        for _ in range(3):
            with pytest.raises(MapValidationError) as exc_info:
                check_writable(qmap)
            assert "contains" in str(exc_info.value)
        assert qmap == before

    def test_first_violation_reported(self) -> None:
        qmap = QuakeMap([
            Entity({b'a': b'"'}),
            Entity({b'b': b'\n'}),
        ])
        with pytest.raises(MapValidationError, match=repr('"')):
            check_writable(qmap)

"""
Quake MAP parser — recursive descent over the tokenizer's output.

Grammar (Quake 1 brushes; Quake 2 surface flags and Quake 3
brushDef/patchDef blocks are not supported):

    map         := entity*
    entity      := '{' edict brush* '}'
    edict       := (quoted quoted)*
    brush       := '{' surface* '}'
    surface     := point point point texture alignment
    point       := '(' float float float ')'
    alignment   := legacy | valve220
    legacy      := float float float float float
    valve220    := '[' float float float float ']'
                   '[' float float float float ']'
                   float float float

The alignment dialect is chosen per surface by one token of lookahead:
a `[` starts the Valve220 form. A brush may mix both dialects.

The parser stops at the first error. It does no semantic validation:
brushes with fewer than 4 surfaces parse fine.

Usage:
    qmap = MapParser().parse_file("e1m1.map")
    for entity in qmap.entities:
        print(entity.classname, len(entity.brushes))
"""
from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import BinaryIO, List, Optional, Union

from qmap_errors import MapSyntaxError
from qmap_lexer import Token, TokenIterator
from qmap_model import Alignment, Brush, Edict, Entity, Point, QuakeMap, Surface

logger = logging.getLogger(__name__)

_LBRACE = ord('{')
_RBRACE = ord('}')
_LPAREN = ord('(')
_RPAREN = ord(')')
_LBRACKET = ord('[')
_RBRACKET = ord(']')


class TokenStream:
    """One-token-lookahead view over a TokenIterator.

    Lexer errors are raised by whichever of peek()/next_token() first
    reaches the bad input.
    """

    def __init__(self, tokens: TokenIterator):
        self._tokens = tokens
        self._peeked: Optional[Token] = None
        self._has_peeked = False

    def peek(self) -> Optional[Token]:
        """The next token without consuming it, or None at end of input."""
        if not self._has_peeked:
            self._peeked = next(self._tokens, None)
            self._has_peeked = True
        return self._peeked

    def next_token(self) -> Optional[Token]:
        """Consume and return the next token, or None at end of input."""
        token = self.peek()
        self._has_peeked = False
        self._peeked = None
        return token

    def at_end(self) -> bool:
        return self.peek() is None


class MapParser:
    """Parses Quake .map text into a QuakeMap."""

    def parse_file(self, filepath: Union[str, Path]) -> QuakeMap:
        """Parse a .map file from disk."""
        filepath = Path(filepath)
        with open(filepath, 'rb') as f:
            return self.parse(f)

    def parse_bytes(self, data: bytes) -> QuakeMap:
        """Parse .map text held in memory."""
        return self.parse(io.BytesIO(data))

    def parse(self, reader: BinaryIO) -> QuakeMap:
        """Parse from any binary reader with a read(n) method."""
        tokens = TokenStream(TokenIterator(reader))
        entities: List[Entity] = []
        while not tokens.at_end():
            entities.append(self._parse_entity(tokens))
        logger.debug("Parsed %d entities", len(entities))
        return QuakeMap(entities=entities)

    def _parse_entity(self, tokens: TokenStream) -> Entity:
        _expect_byte(tokens.next_token(), _LBRACE)
        edict = self._parse_edict(tokens)
        brushes = self._parse_brushes(tokens)
        _expect_byte(tokens.next_token(), _RBRACE)
        return Entity(edict=edict, brushes=brushes)

    def _parse_edict(self, tokens: TokenStream) -> Edict:
        edict: Edict = {}
        while True:
            peeked = tokens.peek()
            if peeked is None or not peeked.match_quoted():
                break
            key = _strip_quotes(tokens.next_token().text)
            value = tokens.next_token()
            _expect_quoted(value)
            # Repeated keys: last value wins
            edict[key] = _strip_quotes(value.text)
        return edict

    def _parse_brushes(self, tokens: TokenStream) -> List[Brush]:
        brushes = []
        while True:
            peeked = tokens.peek()
            if peeked is None or not peeked.match_byte(_LBRACE):
                break
            brushes.append(self._parse_brush(tokens))
        return brushes

    def _parse_brush(self, tokens: TokenStream) -> Brush:
        _expect_byte(tokens.next_token(), _LBRACE)
        surfaces = []
        while True:
            peeked = tokens.peek()
            if peeked is None or not peeked.match_byte(_LPAREN):
                break
            surfaces.append(self._parse_surface(tokens))
        # A bad surface and a missing '}' are one token apart, so name both
        _expect_byte_or(tokens.next_token(), _RBRACE, _LPAREN)
        return Brush(surfaces=surfaces)

    def _parse_surface(self, tokens: TokenStream) -> Surface:
        half_space = (
            self._parse_point(tokens),
            self._parse_point(tokens),
            self._parse_point(tokens),
        )

        texture_token = tokens.next_token()
        if texture_token is None:
            raise MapSyntaxError.eof()
        texture = texture_token.text
        if texture[0] == ord('"'):
            texture = _strip_quotes(texture)

        peeked = tokens.peek()
        if peeked is None:
            raise MapSyntaxError.eof()
        if peeked.match_byte(_LBRACKET):
            alignment = self._parse_valve_alignment(tokens)
        else:
            alignment = self._parse_legacy_alignment(tokens)

        return Surface(half_space=half_space, texture=texture,
                       alignment=alignment)

    def _parse_point(self, tokens: TokenStream) -> Point:
        _expect_byte(tokens.next_token(), _LPAREN)
        x = _expect_float(tokens.next_token())
        y = _expect_float(tokens.next_token())
        z = _expect_float(tokens.next_token())
        _expect_byte(tokens.next_token(), _RPAREN)
        return (x, y, z)

    def _parse_legacy_alignment(self, tokens: TokenStream) -> Alignment:
        offset_x = _expect_float(tokens.next_token())
        offset_y = _expect_float(tokens.next_token())
        rotation = _expect_float(tokens.next_token())
        scale_x = _expect_float(tokens.next_token())
        scale_y = _expect_float(tokens.next_token())
        return Alignment(offset=(offset_x, offset_y), rotation=rotation,
                         scale=(scale_x, scale_y))

    def _parse_valve_alignment(self, tokens: TokenStream) -> Alignment:
        _expect_byte(tokens.next_token(), _LBRACKET)
        u_x = _expect_float(tokens.next_token())
        u_y = _expect_float(tokens.next_token())
        u_z = _expect_float(tokens.next_token())
        offset_x = _expect_float(tokens.next_token())
        _expect_byte(tokens.next_token(), _RBRACKET)

        _expect_byte(tokens.next_token(), _LBRACKET)
        v_x = _expect_float(tokens.next_token())
        v_y = _expect_float(tokens.next_token())
        v_z = _expect_float(tokens.next_token())
        offset_y = _expect_float(tokens.next_token())
        _expect_byte(tokens.next_token(), _RBRACKET)

        rotation = _expect_float(tokens.next_token())
        scale_x = _expect_float(tokens.next_token())
        scale_y = _expect_float(tokens.next_token())

        return Alignment(
            offset=(offset_x, offset_y),
            rotation=rotation,
            scale=(scale_x, scale_y),
            axes=((u_x, u_y, u_z), (v_x, v_y, v_z)),
        )


def parse(reader: BinaryIO) -> QuakeMap:
    """Parse .map text from a binary reader. Entry point for BSP entities."""
    return MapParser().parse(reader)


# ─── Token expectations ───────────────────────────────────────────────────────

def _expect_byte(token: Optional[Token], byte: int) -> None:
    if token is None:
        raise MapSyntaxError.eof()
    if not token.match_byte(byte):
        raise MapSyntaxError(
            f"Expected `{chr(byte)}`, got `{token.text_as_string()}`",
            token.line_number)


def _expect_byte_or(token: Optional[Token], byte: int, *rest: int) -> None:
    if token is None:
        raise MapSyntaxError.eof()
    if not token.match_byte(byte):
        rest_str = ', '.join(f"`{chr(b)}`" for b in rest)
        raise MapSyntaxError(
            f"Expected {rest_str} or `{chr(byte)}`, "
            f"got `{token.text_as_string()}`",
            token.line_number)


def _expect_quoted(token: Optional[Token]) -> None:
    if token is None:
        raise MapSyntaxError.eof()
    if not token.match_quoted():
        raise MapSyntaxError(
            f"Expected quoted, got `{token.text_as_string()}`",
            token.line_number)


def _expect_float(token: Optional[Token]) -> float:
    if token is None:
        raise MapSyntaxError.eof()
    text = token.text_as_string()
    try:
        # float() also takes digit separators and strips Unicode whitespace
        # such as \xa0; the format has neither
        if '_' in text or text != text.strip():
            raise ValueError(text)
        return float(text)
    except ValueError:
        raise MapSyntaxError(f"Expected number, got `{text}`",
                             token.line_number) from None


def _strip_quotes(text: bytes) -> bytes:
    return text[1:-1]

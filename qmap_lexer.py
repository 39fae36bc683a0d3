"""
Quake MAP tokenizer — turns a byte stream into line-numbered tokens.

The .map text format has only three kinds of lexeme:

    unquoted   {  }  (  )  [  ]  -1.23e4  TEX_NAME  /HALF
    quoted     "classname"  "some text with spaces"
    comment    // runs to the end of the line

Tokens are separated by ASCII whitespace. Quoted tokens keep their quote
characters and may span lines; there is no escape syntax, so the first `"`
after the opening one ends the token. A single `/` never starts a comment:
only `//` does, so texture names like `/HALF` survive.

The tokenizer is a small state machine driven one byte at a time:

    DEFAULT ──"──▶ QUOTED ──"──▶ (emit) DEFAULT
       │ ──/──▶ MAYBE_COMMENT ──/──▶ COMMENT ──CR/LF──▶ DEFAULT
       │                     └─other─▶ UNQUOTED (text starts with "/")
       └─other─▶ UNQUOTED ──whitespace──▶ (emit) DEFAULT

Usage:
    with open("e1m1.map", "rb") as f:
        for token in TokenIterator(f):
            print(token.line_number, token.text)
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional

from qmap_errors import MapLexError

# Space, tab, LF, form feed, CR. Vertical tab is an ordinary byte.
ASCII_WHITESPACE = frozenset(b' \t\n\x0c\r')

# Bytes pulled from the reader per read() call
READ_CHUNK_SIZE = 8192

_QUOTE = ord('"')
_SLASH = ord('/')
_CR = ord('\r')
_LF = ord('\n')


@dataclass(frozen=True)
class Token:
    """A non-empty run of non-null bytes and the 1-based line it ended on."""
    text: bytes
    line_number: int

    def match_byte(self, byte: int) -> bool:
        """True if the token is exactly the single byte `byte`."""
        return len(self.text) == 1 and self.text[0] == byte

    def match_quoted(self) -> bool:
        """True if the token is a quoted span like `"abc"` or `""`."""
        return (len(self.text) >= 2
                and self.text[0] == _QUOTE
                and self.text[-1] == _QUOTE)

    def text_as_string(self) -> str:
        """Token text with each byte mapped to one character."""
        return self.text.decode('latin-1')

    def __str__(self) -> str:
        return f"{self.text_as_string()}: line {self.line_number}"


class LexState(enum.Enum):
    DEFAULT = 'default'
    MAYBE_COMMENT = 'maybe_comment'
    COMMENT = 'comment'
    UNQUOTED = 'unquoted'
    QUOTED = 'quoted'


class TokenIterator:
    """Lazy, single-pass iterator of Tokens over a binary reader.

    The reader only needs a read(n) method; no seeking is done. Errors from
    the reader propagate unchanged. A MapLexError ends the iteration.
    """

    def __init__(self, reader: BinaryIO):
        self._reader = reader
        self._state = LexState.DEFAULT
        self._text: Optional[bytearray] = None
        self._last_byte: Optional[int] = None
        self._line_number = 1
        self._chunk = b''
        self._pos = 0
        self._done = False

    @property
    def line_number(self) -> int:
        return self._line_number

    def __iter__(self) -> Iterator[Token]:
        return self

    def __next__(self) -> Token:
        if self._done:
            raise StopIteration

        while True:
            if self._pos >= len(self._chunk):
                self._chunk = self._reader.read(READ_CHUNK_SIZE)
                self._pos = 0
                if not self._chunk:
                    self._done = True
                    token = self._eof_read()
                    if token is None:
                        raise StopIteration
                    return token

            byte = self._chunk[self._pos]
            self._pos += 1
            token = self._byte_read(byte)
            if token is not None:
                return token

    def _byte_read(self, byte: int) -> Optional[Token]:
        if byte == 0:
            self._done = True
            raise MapLexError("Null byte", self._line_number)

        state = self._state
        if state is LexState.DEFAULT:
            token = self._lex_default(byte)
        elif state is LexState.MAYBE_COMMENT:
            token = self._lex_maybe_comment(byte)
        elif state is LexState.COMMENT:
            token = self._lex_comment(byte)
        elif state is LexState.UNQUOTED:
            token = self._lex_unquoted(byte)
        else:
            token = self._lex_quoted(byte)

        # Counts LF, CR and CRLF once each; a token emitted on this byte
        # already has the old line number.
        if byte == _LF or self._last_byte == _CR:
            self._line_number += 1
        self._last_byte = byte

        return token

    def _eof_read(self) -> Optional[Token]:
        text = self._text
        self._text = None
        if text is None:
            return None
        if text[0] == _QUOTE and (len(text) == 1 or text[-1] != _QUOTE):
            raise MapLexError("Missing closing quote", self._line_number)
        return Token(bytes(text), self._line_number)

    def _emit(self) -> Token:
        token = Token(bytes(self._text), self._line_number)
        self._text = None
        self._state = LexState.DEFAULT
        return token

    # ─── States ───────────────────────────────────────────────────────────

    def _lex_default(self, byte: int) -> None:
        if byte in ASCII_WHITESPACE:
            return None
        if byte == _QUOTE:
            self._state = LexState.QUOTED
            self._text = bytearray((byte,))
        elif byte == _SLASH:
            self._state = LexState.MAYBE_COMMENT
        else:
            self._state = LexState.UNQUOTED
            self._text = bytearray((byte,))
        return None

    def _lex_maybe_comment(self, byte: int) -> None:
        if byte == _SLASH:
            self._state = LexState.COMMENT
        else:
            self._text = bytearray((_SLASH, byte))
            self._state = LexState.UNQUOTED
        return None

    def _lex_comment(self, byte: int) -> None:
        if byte == _CR or byte == _LF:
            self._state = LexState.DEFAULT
        return None

    def _lex_unquoted(self, byte: int) -> Optional[Token]:
        if byte in ASCII_WHITESPACE:
            return self._emit()
        self._text.append(byte)
        return None

    def _lex_quoted(self, byte: int) -> Optional[Token]:
        self._text.append(byte)
        if byte == _QUOTE:
            return self._emit()
        return None


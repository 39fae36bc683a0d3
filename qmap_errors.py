"""
Error types shared by the map, BSP and WAD readers.

Text pipeline (tokenizer → parser → validator → writer):

    MapError
     ├── MapParseError
     │    ├── MapLexError         bad byte-level token, always has a line
     │    └── MapSyntaxError      token expectation violated; line is None
     │                            only when the input ran out of tokens
     └── MapWriteError
          └── MapValidationError  document can't be written losslessly

Binary containers:

    BinaryParseError (ValueError)
     └── UnexpectedEOFError (also EOFError), data ended mid-struct

I/O failures of the caller's byte source or sink are never wrapped: the
underlying OSError propagates.
"""
from __future__ import annotations

from typing import Optional


class MapError(Exception):
    """Base class for errors raised by the text map pipeline."""
    pass


class MapParseError(MapError):
    """A parse failure with a human-readable message and optional line number.

    str() gives the message prefixed with "Line N: " when the line is known,
    so it can be shown to a user as-is.
    """

    def __init__(self, message: str, line_number: Optional[int] = None):
        self.message = message
        self.line_number = line_number
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.line_number is None:
            return self.message
        return f"Line {self.line_number}: {self.message}"


class MapLexError(MapParseError):
    """Raised by the tokenizer on a null byte or an unterminated quote."""

    def __init__(self, message: str, line_number: int):
        super().__init__(message, line_number)


class MapSyntaxError(MapParseError):
    """Raised by the parser when a token doesn't match the grammar."""

    @classmethod
    def eof(cls) -> MapSyntaxError:
        return cls("Unexpected end of file")


class MapWriteError(MapError):
    """Base class for failures on the write path."""
    pass


class MapValidationError(MapWriteError):
    """The document model holds a value that has no lossless text form."""
    pass


class BinaryParseError(ValueError):
    """Raised when a BSP/WAD/lump structure is malformed."""
    pass


class UnexpectedEOFError(BinaryParseError, EOFError):
    """Raised when a binary stream ends in the middle of a structure."""
    pass

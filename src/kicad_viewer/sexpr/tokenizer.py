"""Tokenizer for KiCad S-expression text."""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterator, NamedTuple

from kicad_viewer.models.errors import LexError


class TokenKind(str, Enum):
    OPEN = "open"
    CLOSE = "close"
    ATOM = "atom"
    STRING = "string"
    NUMBER = "number"


class Token(NamedTuple):
    kind: TokenKind
    text: str
    offset: int


# Optional sign, digits with optional fraction (or a bare fraction), optional exponent.
NUMBER_PATTERN = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")

_WHITESPACE = " \t\r\n\f\v"
_DELIMITERS = _WHITESPACE + "()"

_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}


def is_number(text: str) -> bool:
    """Return True if ``text`` matches the numeric atom grammar."""
    return NUMBER_PATTERN.match(text) is not None


class Tokenizer:
    """Lazy, restartable token stream over a piece of S-expression text.

    Each call to ``iter()`` starts a fresh scan from the beginning, so the
    same tokenizer can be consumed more than once.

    For ``STRING`` tokens ``text`` holds the unescaped contents without the
    surrounding quotes; ``offset`` always points at the first character of
    the token in the source.
    """

    def __init__(self, text: str):
        self.text = text

    def __iter__(self) -> Iterator[Token]:
        return self._scan()

    def _scan(self) -> Iterator[Token]:
        content = self.text
        length = len(content)
        i = 0

        while i < length:
            ch = content[i]

            if ch in _WHITESPACE:
                i += 1
                continue

            if ch == "(":
                yield Token(TokenKind.OPEN, "(", i)
                i += 1
                continue

            if ch == ")":
                yield Token(TokenKind.CLOSE, ")", i)
                i += 1
                continue

            if ch == '"':
                value, end = _read_string(content, i)
                yield Token(TokenKind.STRING, value, i)
                i = end
                continue

            j = i
            while j < length and content[j] not in _DELIMITERS:
                j += 1
            atom = content[i:j]
            kind = TokenKind.NUMBER if is_number(atom) else TokenKind.ATOM
            yield Token(kind, atom, i)
            i = j


def tokenize(text: str) -> Iterator[Token]:
    """Yield the tokens of ``text``."""
    return iter(Tokenizer(text))


def _read_string(content: str, start: int) -> tuple[str, int]:
    """Read a quoted string starting at ``start`` (the opening quote).

    Returns the unescaped value and the index just past the closing quote.
    """
    chars: list[str] = []
    length = len(content)
    j = start + 1
    while j < length:
        ch = content[j]
        if ch == "\\":
            if j + 1 >= length:
                break
            nxt = content[j + 1]
            chars.append(_ESCAPES.get(nxt, nxt))
            j += 2
            continue
        if ch == '"':
            return "".join(chars), j + 1
        chars.append(ch)
        j += 1
    raise LexError("Unterminated string", start)

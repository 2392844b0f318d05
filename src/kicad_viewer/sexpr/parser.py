"""Recursive-descent parser producing a generic S-expression tree.

The tree knows nothing about KiCad. Every node is immutable and remembers
the offset of its first character so later stages can report errors
without re-parsing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional, Union

from kicad_viewer.logging_config import get_logger
from kicad_viewer.models.errors import LexError, ParseError
from kicad_viewer.sexpr.tokenizer import Token, TokenKind, Tokenizer

logger = get_logger("sexpr.parser")


class SExpr:
    """Base class of all tree nodes."""

    __slots__ = ()


@dataclass(frozen=True)
class Atom(SExpr):
    name: str
    offset: int = field(default=-1, compare=False, repr=False)


@dataclass(frozen=True)
class Number(SExpr):
    value: float
    offset: int = field(default=-1, compare=False, repr=False)


@dataclass(frozen=True)
class String(SExpr):
    value: str
    offset: int = field(default=-1, compare=False, repr=False)


@dataclass(frozen=True)
class List(SExpr):
    items: tuple[SExpr, ...] = ()
    offset: int = field(default=-1, compare=False, repr=False)

    @property
    def head(self) -> Optional[str]:
        """Name of the leading atom, e.g. ``"at"`` for ``(at 1 2)``."""
        if self.items and isinstance(self.items[0], Atom):
            return self.items[0].name
        return None

    @property
    def args(self) -> tuple[SExpr, ...]:
        """Children after the head atom (all children if there is no head)."""
        if self.head is None:
            return self.items
        return self.items[1:]

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[SExpr]:
        return iter(self.items)

    def find(self, head: str) -> Optional["List"]:
        """First child list whose head is ``head``."""
        for item in self.items:
            if isinstance(item, List) and item.head == head:
                return item
        return None

    def find_all(self, head: str) -> list["List"]:
        """All child lists whose head is ``head``."""
        return [item for item in self.items if isinstance(item, List) and item.head == head]

    def has_atom(self, name: str) -> bool:
        """True if a bare atom ``name`` appears among the arguments."""
        return any(isinstance(item, Atom) and item.name == name for item in self.args)


Node = Union[Atom, Number, String, List]


def parse(text: str) -> List:
    """Parse ``text`` into exactly one root list.

    Raises:
        LexError: On an unterminated string or a stray closing paren.
        ParseError: On empty input, an unclosed list, a non-list root, or
            trailing content after the root list.
    """
    tokens = iter(Tokenizer(text))

    first = next(tokens, None)
    if first is None:
        raise ParseError(len(text), "(", "empty input")
    if first.kind is TokenKind.CLOSE:
        raise LexError("Unmatched ')'", first.offset)
    if first.kind is not TokenKind.OPEN:
        raise ParseError(first.offset, "(", "root must be a list")

    root = _parse_list(first, tokens, len(text))

    trailing = next(tokens, None)
    if trailing is not None:
        if trailing.kind is TokenKind.CLOSE:
            raise LexError("Unmatched ')'", trailing.offset)
        raise ParseError(trailing.offset, "end of input", "trailing content after root list")

    logger.debug("Parsed root (%s ...) with %d children", root.head, len(root))
    return root


def _parse_list(opener: Token, tokens: Iterator[Token], length: int) -> List:
    items: list[SExpr] = []
    for token in tokens:
        if token.kind is TokenKind.OPEN:
            items.append(_parse_list(token, tokens, length))
        elif token.kind is TokenKind.CLOSE:
            return List(tuple(items), opener.offset)
        else:
            items.append(_leaf(token))
    raise ParseError(length, ")", f"unclosed list opened at offset {opener.offset}")


def _leaf(token: Token) -> SExpr:
    if token.kind is TokenKind.NUMBER:
        return Number(float(token.text), token.offset)
    if token.kind is TokenKind.STRING:
        return String(token.text, token.offset)
    return Atom(token.text, token.offset)


def as_number(node: SExpr) -> float:
    """Return the numeric value of ``node``.

    Raises:
        ParseError: If ``node`` is not a number literal.
    """
    if isinstance(node, Number):
        return node.value
    offset = getattr(node, "offset", -1)
    raise ParseError(offset, "number", f"expected number, got {describe(node)}")


def as_text(node: SExpr) -> str:
    """Return the text of a string or atom node.

    Numbers are accepted too (KiCad writes some identifiers, like pad
    numbers in old files, unquoted).
    """
    if isinstance(node, String):
        return node.value
    if isinstance(node, Atom):
        return node.name
    if isinstance(node, Number):
        value = node.value
        return str(int(value)) if value.is_integer() else repr(value)
    offset = getattr(node, "offset", -1)
    raise ParseError(offset, "string", f"expected string, got {describe(node)}")


def describe(node: SExpr) -> str:
    """Short human readable description of a node, for error messages."""
    if isinstance(node, Atom):
        return f"atom '{node.name}'"
    if isinstance(node, Number):
        return f"number {node.value:g}"
    if isinstance(node, String):
        return f'string "{node.value}"'
    if isinstance(node, List):
        return f"list ({node.head or ''} ...)"
    return type(node).__name__

"""Serialize generic S-expression trees back to text."""

from __future__ import annotations

import math

from kicad_viewer.sexpr.parser import Atom, List, Number, SExpr, String

_STRING_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def format_number(value: float) -> str:
    """Format a number the way KiCad writes them: integers without a fraction."""
    if math.isinf(value):
        # Out of range literals parse to infinity; write one back.
        return "1e999" if value > 0 else "-1e999"
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def quote(value: str) -> str:
    """Quote and escape a string value."""
    return '"' + "".join(_STRING_ESCAPES.get(ch, ch) for ch in value) + '"'


def dumps(node: SExpr, pretty: bool = False) -> str:
    """Serialize ``node`` to text.

    With ``pretty`` set, nested lists are written on their own lines with
    two-space indentation (KiCad's layout). The output always parses back
    to an equal tree.
    """
    if pretty:
        return _dumps_pretty(node, 0)
    return _dumps_compact(node)


def _leaf(node: SExpr) -> str:
    if isinstance(node, Atom):
        return node.name
    if isinstance(node, Number):
        return format_number(node.value)
    if isinstance(node, String):
        return quote(node.value)
    raise TypeError(f"Not an S-expression node: {node!r}")


def _dumps_compact(node: SExpr) -> str:
    if isinstance(node, List):
        return "(" + " ".join(_dumps_compact(item) for item in node.items) + ")"
    return _leaf(node)


def _dumps_pretty(node: SExpr, depth: int) -> str:
    if not isinstance(node, List):
        return _leaf(node)
    if not any(isinstance(item, List) for item in node.items):
        return _dumps_compact(node)

    tab = "  "
    parts: list[str] = []
    lines: list[str] = []
    for item in node.items:
        if isinstance(item, List) and any(isinstance(sub, List) for sub in item.items):
            lines.append(tab * (depth + 1) + _dumps_pretty(item, depth + 1))
        elif isinstance(item, List) or lines:
            lines.append(tab * (depth + 1) + _dumps_compact(item))
        else:
            parts.append(_leaf(item))

    opener = "(" + " ".join(parts)
    return opener + "\n" + "\n".join(lines) + "\n" + tab * depth + ")"

"""Find the nearest enclosing ``describe``/``it``/``test`` title at a cursor."""

from __future__ import annotations

import re
from pathlib import PurePath

import tree_sitter_typescript as tstypescript
from tree_sitter import Language, Node, Parser

TYPESCRIPT_LANGUAGE = Language(tstypescript.language_typescript())
TSX_LANGUAGE = Language(tstypescript.language_tsx())

TEST_FUNCTIONS = frozenset({"it", "test", "describe"})

_TYPESCRIPT_SUFFIXES = {".ts", ".mts", ".cts"}


def parser_for(filename: str | None) -> Parser:
    """TypeScript grammar for .ts files; TSX (a superset of JS + JSX) otherwise."""
    suffix = PurePath(filename).suffix.lower() if filename else ""
    if suffix in _TYPESCRIPT_SUFFIXES:
        return Parser(TYPESCRIPT_LANGUAGE)
    return Parser(TSX_LANGUAGE)


def offset_from_position(text: str, line: int, column: int = 0) -> int:
    """Convert a 1-based line and 0-based column into a character offset.

    Positions past the end of a line clamp to the line end; lines past the
    end of the text clamp to the end of the text.
    """
    lines = text.splitlines(keepends=True)
    if line < 1:
        return 0
    if line > len(lines):
        return len(text)
    offset = sum(len(x) for x in lines[: line - 1])
    current = lines[line - 1].rstrip("\r\n")
    return offset + max(0, min(column, len(current)))


def skip_indentation(text: str, offset: int) -> int:
    """Move *offset* past the line's indentation if it sits inside it."""
    line_start = text.rfind("\n", 0, offset) + 1
    if text[line_start:offset].strip(" \t"):
        return offset
    while offset < len(text) and text[offset] in " \t":
        offset += 1
    return offset


_ESCAPE_RE = re.compile(
    r"\\(u[dD][89abAB][0-9a-fA-F]{2}\\u[dD][c-fC-F][0-9a-fA-F]{2}"
    r"|u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|\r\n|.)",
    re.DOTALL,
)
_SIMPLE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}
_LINE_CONTINUATIONS = ("\n", "\r\n", "\r", "\u2028", "\u2029")


def _decode_escape(match: re.Match[str]) -> str:
    seq = match.group(1)
    if seq[0] == "u" and "\\" in seq:
        # Surrogate pair written as two \uXXXX escapes.
        high, low = int(seq[1:5], 16), int(seq[7:11], 16)
        return chr(0x10000 + ((high - 0xD800) << 10) + (low - 0xDC00))
    if seq.startswith("u{"):
        code = int(seq[2:-1], 16)
    elif seq[0] in "ux" and len(seq) > 1:
        code = int(seq[1:], 16)
    elif seq in _LINE_CONTINUATIONS:
        return ""
    else:
        return _SIMPLE_ESCAPES.get(seq, seq)
    # Lone surrogates and out-of-range code points stay as written.
    if code > 0x10FFFF or 0xD800 <= code <= 0xDFFF:
        return match.group(0)
    return chr(code)


def unescape_literal(raw: str) -> str:
    """Decode the JavaScript escape sequences in a literal's body."""
    return _ESCAPE_RE.sub(_decode_escape, raw)


def _string_value(node: Node) -> str | None:
    if node.type == "string":
        return unescape_literal(node.text.decode("utf-8")[1:-1])
    if node.type == "template_string":
        if any(c.type == "template_substitution" for c in node.named_children):
            return None
        return unescape_literal(node.text.decode("utf-8")[1:-1])
    return None


def _test_title(call: Node) -> str | None:
    callee = call.child_by_field_name("function")
    if callee is None or callee.type != "identifier":
        return None
    if callee.text.decode("utf-8") not in TEST_FUNCTIONS:
        return None
    arguments = call.child_by_field_name("arguments")
    if arguments is None or not arguments.named_children:
        return None
    return _string_value(arguments.named_children[0])


def name_at_node(node: Node | None) -> str | None:
    """Walk from *node* to the root and join matching titles outer-to-inner."""
    name: str | None = None
    while node is not None:
        if node.type == "call_expression":
            title = _test_title(node)
            if title is not None:
                name = title if name is None else f"{title} {name}"
        node = node.parent
    return name.strip() if name is not None else None


def nearest_test_name(
    source: str,
    offset: int,
    filename: str | None = None,
) -> str | None:
    """Return the nested test name around *offset* in *source*, or ``None``.

    *offset* is a zero-based character offset.  Out-of-range offsets and
    sources with no enclosing test call yield ``None``.
    """
    if offset < 0 or offset > len(source):
        return None
    offset = skip_indentation(source, offset)
    content = source.encode("utf-8")
    tree = parser_for(filename).parse(content)
    point = len(source[:offset].encode("utf-8"))
    if point >= len(content) and content:
        point = len(content) - 1
    node = tree.root_node.descendant_for_byte_range(point, point)
    return name_at_node(node)

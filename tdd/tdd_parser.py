"""
Parses TDD text into a syntax tree.

The text is matched with the parsimonious grammar of `tdd_grammar`, then
`TddTransformer` turns the parse tree into the nodes of `tdd_datatypes`.
Every node keeps the Fragment it was parsed from, so the interpreter can
report exact locations and hand out raw sub-expressions.
"""

import re
from decimal import Decimal
from typing import Union, Optional, Tuple, List

from parsimonious.exceptions import ParseError

from tdd.tdd_datatypes import (
    Fragment, Node, Literal, Word, SequenceNode, HashNode, CallNode,
    PairNode, FlagNode, MergeNode
)
from tdd.tdd_errors import TddSyntaxError
from tdd.tdd_grammar import grammar, MODE_RULES


_ESCAPES = {
    '"': '"', "'": "'", "\\": "\\",
    "n": "\n", "r": "\r", "t": "\t", "f": "\f", "b": "\b",
    "g": ">", "l": "<", "a": "&", "{": "{",
}
_HEX = re.compile(r"[0-9a-fA-F]{1,4}")
_INTEGER = re.compile(r"[+-]?[0-9]+\Z")
_DECIMAL = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?\Z")

# Used only to describe syntax errors
_CLOSED_STRING = re.compile(r'''r"[^"]*"|r'[^']*'|"(?:[^"\\]|\\[\s\S])*"|'(?:[^'\\]|\\[\s\S])*\'''')
_BRACKET_SCAN = re.compile(
    r'''r"[^"]*"?|r'[^']*'?|"(?:[^"\\]|\\[\s\S])*"?|'(?:[^'\\]|\\[\s\S])*'?|<#--[\s\S]*?(?:-->|\Z)|[\[\]{}()]''')
_PAIRS = {"]": "[", "}": "{", ")": "("}
_NOT_CLOSED = {
    "[": 'the list was not closed with "]"',
    "{": 'the hash was not closed with "}"',
    "(": 'the parameter list of the function call was not closed with ")"',
}


def convert_word(text: str):
    """Converts an unquoted word to a boolean or number where it looks like one."""
    if text == "true":
        return True
    if text == "false":
        return False
    if text[0] in "0123456789+-":
        if _INTEGER.match(text):
            return int(text)
        if _DECIMAL.match(text):
            return Decimal(text)
    return text


def _collect(node, *names) -> list:
    """Finds the nearest descendants of a parse node with one of the given rule names."""
    found = []
    for child in node.children:
        if child.expr_name in names:
            found.append(child)
        else:
            found.extend(_collect(child, *names))
    return found


class TddTransformer:
    """Transforms a parsimonious parse tree into TDD syntax nodes."""

    def __init__(self, text: str, file_name: Optional[str] = None):
        self.text = text
        self.file_name = file_name

    def _fragment(self, start: int, end: int) -> Fragment:
        return Fragment(self.text, start, end, self.file_name)

    def transform(self, node) -> Node:
        match node.expr_name:
            case "single_text":
                return self.transform(_collect(node, "value")[0])
            case "hash_text":
                return self._hash(node, braced=False)
            case "sequence_text":
                return self._sequence(node, braced=False)
            case "value" | "key" | "hash_merge":
                return self.transform(node.children[0])
            case "hash":
                return self._hash(node, braced=True)
            case "sequence":
                return self._sequence(node, braced=True)
            case "hash_item":
                return self._hash_item(node)
            case "call":
                return self._call(node)
            case "quoted_string":
                return Literal(self._unescape(node), self._fragment(node.start, node.end))
            case "raw_string":
                return Literal(node.text[2:-1], self._fragment(node.start, node.end))
            case "key_word":
                return Literal(node.text, self._fragment(node.start, node.end))
            case "word":
                return Word(node.text, convert_word(node.text), self._fragment(node.start, node.end))
            case _:
                raise ValueError(f"Unexpected parse node: {node.expr_name!r}")

    def _body(self, node, braced: bool) -> Fragment:
        if braced:
            return self._fragment(node.children[0].end, node.children[-1].start)
        return self._fragment(node.start, node.end)

    def _hash(self, node, braced: bool) -> HashNode:
        items = [self.transform(item)
                 for block in _collect(node, "hash_items")
                 for item in _collect(block, "hash_item")]
        return HashNode(items, self._fragment(node.start, node.end),
                        self._body(node, braced), braced=braced)

    def _sequence(self, node, braced: bool) -> SequenceNode:
        items = [self.transform(item)
                 for block in _collect(node, "sequence_items")
                 for item in _collect(block, "value")]
        return SequenceNode(items, self._fragment(node.start, node.end), self._body(node, braced))

    def _hash_item(self, node) -> Node:
        inner = node.children[0]
        fragment = self._fragment(node.start, node.end)
        match inner.expr_name:
            case "pair":
                key = self.transform(inner.children[0])
                value = self.transform(inner.children[4])
                return PairNode(key.value, value, fragment)
            case "hash_merge":
                return MergeNode(self.transform(inner), fragment)
            case _:
                return FlagNode(self.transform(inner).value, fragment)

    def _call(self, node) -> CallNode:
        # call = word ws "(" ws sequence_items? ws ")"
        name = node.children[0].text
        params = [self.transform(item)
                  for block in _collect(node, "sequence_items")
                  for item in _collect(block, "value")]
        body = self._fragment(node.children[2].end, node.children[-1].start)
        return CallNode(name, params, self._fragment(node.start, node.end), body)

    def _unescape(self, node) -> str:
        body = node.text[1:-1]
        base = node.start + 1
        out = []
        i = 0
        n = len(body)
        while i < n:
            c = body[i]
            if c != "\\":
                out.append(c)
                i += 1
                continue
            esc = body[i + 1]
            if esc in _ESCAPES:
                out.append(_ESCAPES[esc])
                i += 2
            elif esc in "xu":
                m = _HEX.match(body, i + 2)
                if not m:
                    raise self._error("Invalid hexadecimal UNICODE escape in the string literal.", base + i)
                out.append(chr(int(m.group(0), 16)))
                i = m.end()
            elif esc.isspace():
                # Line continuation: skip white-space up to and including one line break
                j = i + 1
                while j < n and body[j].isspace() and body[j] not in "\r\n":
                    j += 1
                if j >= n or body[j] not in "\r\n":
                    raise self._error(
                        "A backslash followed by white-space is only allowed as a line "
                        "continuation, at the end of the line.", base + i)
                if body.startswith("\r\n", j):
                    j += 1
                i = j + 1
            else:
                raise self._error(f"Invalid escape sequence \\{esc} in the string literal.", base + i)
        return "".join(out)

    def _error(self, message: str, position: int) -> TddSyntaxError:
        return TddSyntaxError(message, text=self.text, position=position, file_name=self.file_name)


# =================================================================
# Public API
# =================================================================

def _bounds(source: Union[str, Fragment], file_name: Optional[str]) -> Tuple[str, int, int, Optional[str]]:
    if isinstance(source, Fragment):
        return source.text, source.start, source.end, file_name or source.file_name
    if not isinstance(source, str):
        raise TypeError(f"TDD source must be a str or a Fragment, not {type(source).__name__}")
    return source, 0, len(source), file_name


def parse(source: Union[str, Fragment], mode: str = "value", *, file_name: Optional[str] = None) -> Node:
    """
    Parses TDD source into a syntax tree.

    `mode` is "value" for a single expression, "hash" for hash content
    without the braces, and "sequence" for sequence content without the
    brackets. `source` can be a string or a Fragment; node positions are
    always offsets into the full text.
    """
    if mode not in MODE_RULES:
        raise ValueError(f"Unknown parse mode: {mode!r}")
    text, start, end, file_name = _bounds(source, file_name)
    if mode == "value" and not text[start:end].strip():
        raise TddSyntaxError("The text is empty.", text=text, position=start, file_name=file_name)
    try:
        tree = grammar[MODE_RULES[mode]].parse(text[:end], pos=start)
    except ParseError as e:
        pos = e.pos if e.pos is not None and e.pos >= start else start
        rule = getattr(e.expr, "name", "") or ""
        message = describe_failure(text, pos, start, end, mode, rule)
        raise TddSyntaxError(message, text=text, position=pos, file_name=file_name) from None
    return TddTransformer(text, file_name).transform(tree)


def open_brackets(text: str, start: int, end: int) -> List[Tuple[str, int]]:
    """The brackets still open at `end`, outermost first, skipping strings and comments."""
    stack = []
    for m in _BRACKET_SCAN.finditer(text, start, end):
        tok = m.group(0)
        if tok in "[{(":
            stack.append((tok, m.start()))
        elif tok in _PAIRS and stack and stack[-1][0] == _PAIRS[tok]:
            stack.pop()
    return stack


def describe_failure(text: str, pos: int, start: int, end: int, mode: str, rule: str = "") -> str:
    """Chooses a human-readable message for a parse failure at `pos`."""
    before = text[start:pos].rstrip()
    prev = before[-1:]
    brackets = open_brackets(text, start, min(pos, end))
    inner = brackets[-1][0] if brackets else ("[" if mode == "sequence" else "{" if mode == "hash" else "")

    if pos >= end:
        if prev == ":":
            return "The key must be followed by a value because colon was used."
        if brackets:
            char, at = brackets[-1]
            return f"Reached the end of the text, but {_NOT_CLOSED[char]} (opened at character {at + 1})."
        return "Unexpected end of the text."

    c = text[pos]
    if mode == "value" and rule == "eof" and not brackets:
        return "Extra character(s) after the expression."
    if text.startswith("<#--", pos):
        return 'Comment was not closed with "-->".'
    if c in "\"'" or text.startswith(('r"', "r'"), pos):
        if not _CLOSED_STRING.match(text, pos, end):
            return "The closing quotation mark of the string is missing."
    if c == ";":
        return "Semicolon (;) was unexpected here. Items must be separated with commas or line breaks."
    if c == "=":
        return "Equals sign (=) was unexpected here. Keys and values must be separated with colon (:)."
    if c == ",":
        if prev in ("", ",", "[", "{", "("):
            if inner == "{":
                return "Key-value pair is missing before the comma."
            return "List item is missing before the comma."
        return "Character \",\" shouldn't occur here."
    if c == ":":
        if inner in ("[", "("):
            return "This is a list, and not a hash; colon (:) can't be used here."
        return "The key before the colon (:) is missing or is not a string."
    if c in _PAIRS:
        if brackets:
            return f"Unexpected {c!r}: {_NOT_CLOSED[brackets[-1][0]]}."
        return f"Unexpected closing bracket {c!r}."
    if before and text[pos - 1].isspace():
        return "No separator was used before the item. Items must be separated with commas or line breaks."
    return f"Character {c!r} shouldn't occur here."

"""
Defines the core data types for the TDD data language.

This module provides the source span type (Fragment), the call value that
can survive evaluation (FunctionCall), the syntax tree produced by the
parser, and the enums of the evaluation-environment protocol.
"""

from enum import Enum
from typing import List, Any, Optional


# =================================================================
# Source Spans
# =================================================================

class Fragment:
    """An immutable view into a source text.

    A Fragment is used wherever diagnostics must point at an exact source
    location, and wherever a sub-expression is kept unevaluated (the
    evaluation environment can ask for a hash value to be bound to its raw
    Fragment instead of its value).
    """
    __slots__ = ("_text", "_start", "_end", "_file_name")

    def __init__(self, text: str, start: int = 0, end: Optional[int] = None,
                 file_name: Optional[str] = None):
        if end is None:
            end = len(text)
        if not 0 <= start <= end <= len(text):
            raise ValueError(
                f"Fragment bounds out of range: start={start}, end={end}, length={len(text)}")
        self._text = text
        self._start = start
        self._end = end
        self._file_name = file_name

    @property
    def text(self) -> str:
        """The full source text, not only the fragment."""
        return self._text

    @property
    def start(self) -> int:
        return self._start

    @property
    def end(self) -> int:
        return self._end

    @property
    def file_name(self) -> Optional[str]:
        return self._file_name

    @property
    def line(self) -> int:
        return self._text.count("\n", 0, self._start) + 1

    @property
    def column(self) -> int:
        return self._start - (self._text.rfind("\n", 0, self._start) + 1) + 1

    @property
    def char_position(self) -> int:
        return self._start + 1

    def __str__(self):
        return self._text[self._start:self._end]

    def __repr__(self):
        where = f" in {self._file_name}" if self._file_name else ""
        return f"<Fragment {str(self)!r} [{self._start}:{self._end}]{where}>"

    def __eq__(self, other):
        if not isinstance(other, Fragment):
            return NotImplemented
        return (self._text == other._text and self._start == other._start
                and self._end == other._end and self._file_name == other._file_name)

    def __hash__(self):
        return hash((self._text, self._start, self._end, self._file_name))


# =================================================================
# Values
# =================================================================

class FunctionCall:
    """A function call value.

    While the interpreter hands a call to the evaluation environment, the
    `params` are the unevaluated syntax nodes; `evaluated` turns true once
    `Interpreter.evaluate_params` has replaced them with their values. A
    call the environment leaves unresolved ends up in the result with
    evaluated params. `body` spans the parameter list between the
    parentheses.
    """
    def __init__(self, name: str, params: List[Any], fragment: Optional[Fragment] = None,
                 body: Optional[Fragment] = None):
        self.name = name
        self.params = list(params)
        self.evaluated = False
        self.fragment = fragment
        self.body = body

    def __repr__(self):
        return f"FunctionCall({self.name!r}, {self.params!r})"

    def __eq__(self, other):
        return (isinstance(other, FunctionCall)
                and self.name == other.name and self.params == other.params)


# =================================================================
# Syntax Tree
# =================================================================

class Node:
    """Base class of all syntax tree nodes; every node knows its Fragment."""
    def __init__(self, fragment: Fragment):
        self.fragment = fragment

    def __repr__(self):
        return f"<{type(self).__name__} {str(self.fragment)!r}>"


class Literal(Node):
    """A quoted or raw string."""
    def __init__(self, value: str, fragment: Fragment):
        super().__init__(fragment)
        self.value = value


class Word(Node):
    """An unquoted string. `value` is the converted scalar, `text` the word as written."""
    def __init__(self, text: str, value: Any, fragment: Fragment):
        super().__init__(fragment)
        self.text = text
        self.value = value


class SequenceNode(Node):
    def __init__(self, items: List[Node], fragment: Fragment, body: Fragment):
        super().__init__(fragment)
        self.items = items
        self.body = body


class HashNode(Node):
    """A hash. `braced` is False for hash content parsed without `{` and `}`."""
    def __init__(self, items: List[Node], fragment: Fragment, body: Fragment, braced: bool = True):
        super().__init__(fragment)
        self.items = items
        self.body = body
        self.braced = braced


class CallNode(Node):
    def __init__(self, name: str, params: List[Node], fragment: Fragment, body: Fragment):
        super().__init__(fragment)
        self.name = name
        self.params = params
        self.body = body


class PairNode(Node):
    """`key: value` inside a hash."""
    def __init__(self, key: str, value: Node, fragment: Fragment):
        super().__init__(fragment)
        self.key = key
        self.value = value


class FlagNode(Node):
    """A bare key inside a hash; binds the key to true."""
    def __init__(self, key: str, fragment: Fragment):
        super().__init__(fragment)
        self.key = key


class MergeNode(Node):
    """A hash or a call inside a hash whose entries are added to that hash."""
    def __init__(self, expr: Node, fragment: Fragment):
        super().__init__(fragment)
        self.expr = expr


# =================================================================
# Evaluation Environment Protocol
# =================================================================

class Event(Enum):
    ENTER_HASH_KEY = "enter-hash-key"
    LEAVE_HASH_KEY = "leave-hash-key"
    ENTER_FUNCTION_PARAMS = "enter-function-params"
    LEAVE_FUNCTION_PARAMS = "leave-function-params"
    ENTER_SEQUENCE = "enter-sequence"
    LEAVE_SEQUENCE = "leave-sequence"
    ENTER_HASH = "enter-hash"
    LEAVE_HASH = "leave-hash"


class Directive(Enum):
    """What the interpreter should do after notifying an enter event."""
    CONTINUE = "continue"
    # Omit the key-value pair, the value expression is not evaluated.
    SKIP = "skip"
    # Use the raw Fragment of the value (or of the whole hash) instead of evaluating it.
    FRAGMENT = "fragment"

"""
A pretty-printer that renders TDD values back as TDD source text.
"""
import collections.abc
from decimal import Decimal

from tdd.tdd_datatypes import Fragment, FunctionCall


_STRING_ESCAPES = {
    "\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r",
    "\t": "\\t", "\f": "\\f", "\b": "\\b",
}


class Printer:
    """Formats values into readable TDD source that parses back to the same values."""

    def __init__(self, indent_width=4):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, collections.abc.Mapping): return self._pformat_dict
        if isinstance(obj, (list, tuple)): return self._pformat_list
        if isinstance(obj, str): return self._pformat_str
        return lambda o, l: self._pformat_str(str(o), l)

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            int: self._pformat_primitive,
            float: self._pformat_primitive,
            Decimal: self._pformat_primitive,
            bool: self._pformat_bool,
            type(None): self._pformat_none,
            dict: self._pformat_dict,
            list: self._pformat_list,
            FunctionCall: self._pformat_call,
            Fragment: self._pformat_fragment,
        }

    def _pformat_primitive(self, obj, level):
        return str(obj)

    def _pformat_str(self, obj, level):
        out = []
        for c in obj:
            esc = _STRING_ESCAPES.get(c)
            if esc is None and ord(c) < 0x20:
                esc = f"\\x{ord(c):04X}"
            out.append(esc or c)
        return '"' + "".join(out) + '"'

    def _pformat_bool(self, obj, level):
        return 'true' if obj else 'false'

    def _pformat_none(self, obj, level):
        # TDD has no null literal; this reads back as the string "null"
        return 'null'

    def _pformat_fragment(self, obj, level):
        return str(obj)

    def _pformat_call(self, obj, level):
        # Parameters are always printed on one line
        params = ", ".join(self._single_line(p) for p in obj.params)
        return f"{obj.name}({params})"

    def _single_line(self, obj):
        if isinstance(obj, collections.abc.Mapping):
            return "{" + ", ".join(f"{self._pformat_str(str(k), 0)}: {self._single_line(v)}"
                                   for k, v in obj.items()) + "}"
        if isinstance(obj, (list, tuple)):
            return "[" + ", ".join(self._single_line(v) for v in obj) + "]"
        return self.pformat(obj, 0)

    def _pformat_dict(self, obj, level):
        if not obj:
            return "{}"
        lines = [f"{self._pformat_str(str(k), level + 1)}: {self.pformat(v, level + 1)}"
                 for k, v in obj.items()]
        return self._pformat_block(lines, level, '{', '}')

    def _pformat_list(self, obj, level):
        if not obj:
            return "[]"
        lines = [self.pformat(v, level + 1) for v in obj]
        return self._pformat_block(lines, level, '[', ']')

    def _pformat_block(self, lines, level, open_char, close_char):
        indent = self._indent_char * (level + 1)
        body = ",\n".join(f"{indent}{line}" for line in lines)
        return f"{open_char}\n{body}\n{self._indent_char * level}{close_char}"


def dump(value, indent_width=4) -> str:
    """Renders a value as TDD source text."""
    return Printer(indent_width).pformat(value)

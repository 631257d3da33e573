"""
The built-in data loaders and the default loader registry.

File loaders take the file name as their first argument, resolved against
the engine's data root. Most accept an encoding or an options hash as the
second argument.
"""

import codecs
import collections.abc
import csv
import datetime
import io
import re
from abc import abstractmethod
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from tdd.tdd_datatypes import Fragment
from tdd.tdd_environment import DataLoaderEvaluationEnvironment
from tdd.tdd_interpreter import evaluate_as_hash, evaluate_as_sequence, type_name
from tdd.tdd_loaders import DataLoader, DataLoaderRegistry
from tdd.tdd_serialize import deserialize


_ORDINALS = {1: "1st", 2: "2nd", 3: "3rd"}


def _ordinal(n: int) -> str:
    return _ORDINALS.get(n, f"{n}th")


# =================================================================
# Option Helpers
# =================================================================

def get_string_option(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"The value of the \"{name}\" option must be a string, but now it was a "
                        f"{type_name(value)}.")
    return value


def get_boolean_option(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"The value of the \"{name}\" option must be a boolean, but now it was a "
                        f"{type_name(value)}.")
    return value


def get_char_option(name: str, value: Any) -> str:
    s = get_string_option(name, value)
    if s == "tab":
        return "\t"
    if len(s) != 1:
        raise ValueError(f"The value of the \"{name}\" option must be a 1 character long string "
                         f"or \"tab\", but now it was {s!r}.")
    return s


def get_string_list_option(name: str, value: Any, allow_string: bool = False) -> List[str]:
    if allow_string and isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        expected = "a sequence or a string" if allow_string else "a sequence"
        raise TypeError(f"The value of the \"{name}\" option must be {expected}, but now it was a "
                        f"{type_name(value)}.")
    for i, item in enumerate(value):
        if not isinstance(item, str):
            raise TypeError(f"The value of the \"{name}\" option must be a sequence of strings, but "
                            f"the item at index {i} is a {type_name(item)}.")
    return list(value)


def get_options(args: List[Any], index: int) -> Dict[str, Any]:
    """The options hash at `args[index]`, or an empty dict when it's missing."""
    if len(args) <= index:
        return {}
    options = args[index]
    if not isinstance(options, collections.abc.Mapping):
        raise TypeError(f"The {_ordinal(index + 1)} argument (options) must be a hash.")
    return dict(options)


# =================================================================
# File Loaders
# =================================================================

class FileDataLoader(DataLoader):
    """Base of loaders whose first argument is a file name."""

    def load(self, engine, args: List[Any]) -> Any:
        if len(args) < 1:
            raise ValueError("At least 1 argument (file name) needed.")
        if not isinstance(args[0], str):
            raise TypeError(f"The 1st argument (file name) must be a string, but it's a {type_name(args[0])}.")
        return self.load_file(engine, engine.resolve_path(args[0]), args)

    @abstractmethod
    def load_file(self, engine, path: Path, args: List[Any]) -> Any:
        raise NotImplementedError


class TextFileDataLoader(FileDataLoader):
    """Reads the file as text, then parses the text.

    The default extra argument is the encoding, the engine's source
    encoding when omitted. A leading byte order mark is dropped.
    """
    max_args = 2

    def parse_extra_arguments(self, engine, args: List[Any]) -> Optional[str]:
        """Validates the arguments after the file name; returns the encoding to use."""
        if len(args) > self.max_args:
            raise ValueError(f"Too many arguments: at most {self.max_args} allowed.")
        if len(args) > 1:
            if not isinstance(args[1], str):
                raise TypeError(f"The 2nd argument (encoding) must be a string, but it's a {type_name(args[1])}.")
            return args[1]
        return None

    def load_file(self, engine, path: Path, args: List[Any]) -> Any:
        encoding = self.parse_extra_arguments(engine, args) or engine.source_encoding
        with open(path, "r", encoding=encoding, newline="") as f:
            text = f.read()
        if text.startswith("\ufeff"):
            text = text[1:]
        return self.parse_text(engine, text, path)

    @abstractmethod
    def parse_text(self, engine, text: str, path: Path) -> Any:
        raise NotImplementedError


class TextDataLoader(TextFileDataLoader):
    """text(file[, encoding]): the content of the file as a string."""

    def parse_text(self, engine, text, path):
        return text


class SlicedTextDataLoader(TextFileDataLoader):
    """slicedText(file[, {separator, encoding, trim, dropEmptyLastItem}]): the text cut into a list."""

    def __init__(self):
        self.separator = "\n"
        self.trim = False
        self.drop_empty_last_item = True

    def parse_extra_arguments(self, engine, args):
        if len(args) > 2:
            raise ValueError("Too many arguments: slicedText(file[, options])")
        encoding = None
        for name, value in get_options(args, 1).items():
            match name:
                case "separator":
                    sep = get_string_option(name, value).replace("\r\n", "\n").replace("\r", "\n")
                    if not sep:
                        raise ValueError(f"The value of the \"{name}\" option can't be 0 length string.")
                    self.separator = sep
                case "encoding":
                    encoding = get_string_option(name, value)
                case "trim":
                    self.trim = get_boolean_option(name, value)
                case "dropEmptyLastItem":
                    self.drop_empty_last_item = get_boolean_option(name, value)
                case _:
                    raise ValueError(f"Unknown option: {name!r}. The supported options are: "
                                     "separator, encoding, trim, dropEmptyLastItem")
        return encoding

    def _separator_end(self, text: str, i: int) -> int:
        """Index after the separator if the text has one at `i`, else -1.

        A line break in the separator matches any line break, and, when it's
        not the first separator character, also eats spaces and tabs before it.
        """
        ti = i
        n = len(text)
        for si, sc in enumerate(self.separator):
            if sc == "\n":
                while si != 0 and ti < n and text[ti] in " \t":
                    ti += 1
                if ti < n and text[ti] == "\n":
                    ti += 1
                elif ti < n and text[ti] == "\r":
                    ti += 1
                    if ti < n and text[ti] == "\n":
                        ti += 1
                else:
                    return -1
            elif ti < n and text[ti] == sc:
                ti += 1
            else:
                return -1
        return ti

    def parse_text(self, engine, text, path):
        items = []
        b = e = 0
        n = len(text)
        while True:
            if e == n:
                items.append(self._item(text, b, e))
                break
            after = self._separator_end(text, e)
            if after == -1:
                e += 1
                continue
            items.append(self._item(text, b, e))
            b = e = after
        if self.drop_empty_last_item and items and items[-1] == "":
            items.pop()
        return items

    def _item(self, text: str, b: int, e: int) -> str:
        item = text[b:e]
        return item.strip() if self.trim else item


_PROPERTY_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


def parse_properties(text: str) -> Dict[str, str]:
    """Parses the Java `.properties` format."""
    result: Dict[str, str] = {}
    lines = text.splitlines()
    i = 0
    while i < len(lines):
        line = lines[i].lstrip(" \t\f")
        i += 1
        if not line or line[0] in "#!":
            continue
        # A line ending with an odd number of backslashes continues on the next one
        while (len(line) - len(line.rstrip("\\"))) % 2 == 1 and i < len(lines):
            line = line[:-1] + lines[i].lstrip(" \t\f")
            i += 1
        key, value = _split_property(line)
        result[_unescape_property(key)] = _unescape_property(value)
    return result


def _split_property(line: str):
    j = 0
    n = len(line)
    while j < n:
        c = line[j]
        if c == "\\":
            j += 2
            continue
        if c in "=: \t\f":
            break
        j += 1
    key = line[:j]
    rest = line[j:].lstrip(" \t\f")
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(" \t\f")
    return key, rest


def _unescape_property(s: str) -> str:
    if "\\" not in s:
        return s
    out = []
    i = 0
    while i < len(s):
        c = s[i]
        if c != "\\" or i + 1 >= len(s):
            out.append(c)
            i += 1
            continue
        esc = s[i + 1]
        if esc == "u":
            code = s[i + 2:i + 6]
            if len(code) != 4 or not re.fullmatch(r"[0-9a-fA-F]{4}", code):
                raise ValueError(f"Malformed \\uXXXX escape in properties file: {s[i:i + 6]!r}")
            out.append(chr(int(code, 16)))
            i += 6
        else:
            out.append(_PROPERTY_ESCAPES.get(esc, esc))
            i += 2
    return "".join(out)


class PropertiesDataLoader(FileDataLoader):
    """properties(file): a Java `.properties` file as a hash of strings."""

    def load_file(self, engine, path, args):
        if len(args) != 1:
            raise ValueError("properties data loader needs exactly 1 argument: properties(filename)")
        with open(path, "r", encoding="iso-8859-1") as f:
            return parse_properties(f.read())


class CsvDataLoader(TextFileDataLoader):
    """csv(file[, options]): the rows of a CSV file as a list of hashes."""

    def __init__(self):
        self.external_headers: Optional[List[str]] = None
        self.has_header_row = True
        self.normalize_headers = False
        self.trim_cells = False
        self.empty_values: List[str] = []
        self.separator = ";"
        self.grouping_separator: Optional[str] = None
        self.decimal_separator = "."
        self.alt_true: Optional[str] = None
        self.alt_false: Optional[str] = None

    def parse_extra_arguments(self, engine, args):
        if len(args) > 2:
            raise ValueError("csv data loader needs 1 or 2 arguments: "
                             "csv(filename) or csv(filename, options)")
        encoding = None
        header_option_used = False
        for name, value in get_options(args, 1).items():
            match name:
                case "headers" | "replaceHeaders":
                    if header_option_used:
                        raise ValueError("Only one of the \"headers\" and \"replaceHeaders\" options "
                                         "can be used at once.")
                    header_option_used = True
                    self.external_headers = get_string_list_option(name, value)
                    self.has_header_row = name == "replaceHeaders"
                case "normalizeHeaders":
                    self.normalize_headers = get_boolean_option(name, value)
                case "trimCells":
                    self.trim_cells = get_boolean_option(name, value)
                case "emptyValue":
                    self.empty_values = get_string_list_option(name, value, allow_string=True)
                case "separator":
                    self.separator = get_char_option(name, value)
                case "groupingSeparator":
                    self.grouping_separator = get_char_option(name, value)
                case "decimalSeparator":
                    self.decimal_separator = get_char_option(name, value)
                case "encoding":
                    encoding = get_string_option(name, value)
                case "altTrue":
                    self.alt_true = get_string_option(name, value).strip().lower()
                case "altFalse":
                    self.alt_false = get_string_option(name, value).strip().lower()
                case _:
                    raise ValueError(f"Unknown option: {name!r}. The supported options are: "
                                     "encoding, separator, headers, replaceHeaders, normalizeHeaders, "
                                     "trimCells, emptyValue, groupingSeparator, decimalSeparator, "
                                     "altTrue, altFalse")
        return encoding

    def _header(self, cell: str):
        if self.normalize_headers:
            # Drop the part in parentheses before the type is extracted
            open_at, close_at = cell.find("("), cell.rfind(")")
            if open_at != -1 and close_at != -1 and open_at < close_at:
                cell = cell[:open_at] + cell[close_at + 1:]
        name, sep, kind = cell.rpartition(":")
        if not sep:
            name, kind = cell, "string"
        name = name.strip()
        match kind.strip().lower():
            case "s" | "string":
                kind = "string"
            case "n" | "number":
                kind = "number"
            case "b" | "boolean":
                kind = "boolean"
            case other:
                raise ValueError(f"Unknown data type in a header: {other!r}")
        if self.normalize_headers:
            name = re.sub(r"[ \-,;:]", "_", name.lower())
            name = re.sub(r"_{2,}", "_", name)
        return name, kind

    def _number(self, s: str):
        s = s.strip()
        if self.grouping_separator:
            s = s.replace(self.grouping_separator, "")
        if self.decimal_separator != ".":
            s = s.replace(self.decimal_separator, ".")
        if not s:
            return None
        try:
            return int(s) if re.fullmatch(r"[+-]?[0-9]+", s) else Decimal(s)
        except InvalidOperation:
            raise ValueError(f"Invalid number: {s!r}") from None

    def _boolean(self, s: str):
        s = s.strip().lower()
        if self.alt_true is not None and s == self.alt_true:
            return True
        if self.alt_false is not None and s == self.alt_false:
            return False
        if not s:
            return None
        if s in ("true", "false"):
            return s == "true"
        raise ValueError(f"Invalid boolean: {s!r}")

    def parse_text(self, engine, text, path):
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=self.separator, quotechar='"')
        rows = [row for row in reader if row]
        if self.external_headers is not None:
            header_cells = self.external_headers
            if self.has_header_row:
                rows = rows[1:]
        else:
            if not rows:
                return []
            header_cells, rows = rows[0], rows[1:]
        headers = [self._header(cell) for cell in header_cells]

        result = []
        for row_index, row in enumerate(rows):
            if len(row) > len(headers):
                raise ValueError(f"Row {row_index + 2} contains more columns than the number of header cells.")
            record: Dict[str, Any] = {name: None for name, _ in headers}
            for (name, kind), cell in zip(headers, row):
                if self.trim_cells:
                    cell = cell.strip()
                if cell in self.empty_values:
                    cell = ""
                match kind:
                    case "number":
                        record[name] = self._number(cell)
                    case "boolean":
                        record[name] = self._boolean(cell)
                    case _:
                        record[name] = cell
            result.append(record)
        return result


_ENCODING_HEADER = re.compile(rb"[ \t]*#[ \t]*(?:encoding|charset)[ \t]*:[ \t]*([A-Za-z0-9_.:\-]+)", re.IGNORECASE)


def load_tdd_text(path: Path, encoding: str, file_name: Optional[str] = None) -> Fragment:
    """Reads a TDD file; a `#encoding: X` first line overrides `encoding`."""
    raw = path.read_bytes()
    if raw.startswith(codecs.BOM_UTF8):
        raw = raw[len(codecs.BOM_UTF8):]
        encoding = "utf-8"
    else:
        m = _ENCODING_HEADER.match(raw)
        if m:
            encoding = m.group(1).decode("ascii")
    return Fragment(raw.decode(encoding), file_name=file_name or str(path))


class TddDataLoader(FileDataLoader):
    """tdd(file[, encoding]): a file of TDD hash content, evaluated with the data loaders."""
    mode = "hash"

    def load_file(self, engine, path, args):
        if len(args) > 2:
            raise ValueError(f"{'tddSequence' if self.mode == 'sequence' else 'tdd'} data loader needs "
                             "1 or 2 arguments: (filename[, encoding])")
        if len(args) > 1 and not isinstance(args[1], str):
            raise TypeError(f"The 2nd argument (encoding) must be a string, but it's a {type_name(args[1])}.")
        encoding = args[1] if len(args) > 1 else engine.source_encoding
        fragment = load_tdd_text(path, encoding, args[0])
        environment = DataLoaderEvaluationEnvironment(engine)
        if self.mode == "sequence":
            return evaluate_as_sequence(fragment, environment)
        return evaluate_as_hash(fragment, environment)


class TddSequenceDataLoader(TddDataLoader):
    """tddSequence(file[, encoding]): a file of TDD sequence content."""
    mode = "sequence"


class JsonDataLoader(TextFileDataLoader):
    """json(file[, encoding])"""

    def parse_text(self, engine, text, path):
        return deserialize(text, fmt="json")


class YamlDataLoader(TextFileDataLoader):
    """yaml(file[, encoding])"""

    def parse_text(self, engine, text, path):
        return deserialize(text, fmt="yaml")


class TomlDataLoader(TextFileDataLoader):
    """toml(file): TOML files are always UTF-8."""
    max_args = 1

    def parse_text(self, engine, text, path):
        return deserialize(text, fmt="toml")


# =================================================================
# Other Loaders
# =================================================================

_DATE_STYLES = {
    "short": "%Y-%m-%d",
    "medium": "%b %d, %Y",
    "long": "%B %d, %Y",
    "default": "%b %d, %Y",
}
_TIME_STYLES = {
    "short": "%H:%M",
    "medium": "%H:%M:%S",
    "long": "%H:%M:%S %Z",
    "default": "%H:%M:%S",
}


class NowDataLoader(DataLoader):
    """now([{pattern, date, time, zone}]): the current date and time as a string."""

    def load(self, engine, args):
        if len(args) > 1:
            raise ValueError("now data loader needs 0 or 1 arguments.")
        if args and not isinstance(args[0], collections.abc.Mapping):
            raise TypeError("The argument of now data loader must be a hash.")
        pattern = date_style = time_style = None
        zone = engine.time_zone
        for name, value in get_options(args, 0).items():
            match name:
                case "pattern":
                    pattern = get_string_option(name, value)
                case "date" | "time":
                    style = get_string_option(name, value).lower()
                    if style not in _DATE_STYLES:
                        raise ValueError(f"Illegal value for the {name} option: {value!r}. "
                                         "Valid values are: short, medium, long, default")
                    if name == "date":
                        date_style = style
                    else:
                        time_style = style
                case "zone":
                    zone = get_string_option(name, value)
                case _:
                    raise ValueError(f"Unknown option: {name!r}. The supported options are: "
                                     "date, time, pattern, zone")

        if pattern is not None:
            if date_style or time_style:
                raise ValueError("You can't use the date/time options together with the pattern option.")
        elif date_style and time_style:
            pattern = f"{_DATE_STYLES[date_style]} {_TIME_STYLES[time_style]}"
        elif date_style:
            pattern = _DATE_STYLES[date_style]
        elif time_style:
            pattern = _TIME_STYLES[time_style]
        else:
            pattern = f"{_DATE_STYLES['short']} {_TIME_STYLES['short']}"

        if zone is not None:
            now = datetime.datetime.now(ZoneInfo(zone))
        else:
            now = datetime.datetime.now().astimezone()
        return now.strftime(pattern)


# =================================================================
# Default Registry
# =================================================================

BUILTIN_LOADERS = {
    "properties": PropertiesDataLoader,
    "text": TextDataLoader,
    "slicedText": SlicedTextDataLoader,
    "csv": CsvDataLoader,
    "tdd": TddDataLoader,
    "tddSequence": TddSequenceDataLoader,
    "json": JsonDataLoader,
    "yaml": YamlDataLoader,
    "toml": TomlDataLoader,
    "now": NowDataLoader,
}

# name -> (import path, required engine capability)
ON_DEMAND_LOADERS = {
    "xml": ("tdd.tdd_xml:XmlDataLoader", "xml"),
}


def create_default_registry() -> DataLoaderRegistry:
    registry = DataLoaderRegistry()
    for name, factory in BUILTIN_LOADERS.items():
        registry.register(name, factory)
    for name, (target, capability) in ON_DEMAND_LOADERS.items():
        registry.register_on_demand(name, target, capability)
    return registry


default_registry = create_default_registry()


def resolve_data_loader(engine, name: str) -> DataLoader:
    """Resolves a call name with the engine's registry, or the default one."""
    registry = getattr(engine, "registry", None) or default_registry
    return registry.resolve(engine, name)

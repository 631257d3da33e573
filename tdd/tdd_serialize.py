from __future__ import annotations

import json
import os
from typing import Any, Optional
import collections.abc

import yaml

import tomllib

# XML via xmltodict; the xml data loader is gated on this import
try:
    import xmltodict
except Exception:
    xmltodict = None  # type: ignore[assignment]


# --------------------------
# Helpers
# --------------------------

def _norm_text(data: bytes | bytearray | str, *, encoding: Optional[str] = None) -> str:
    if isinstance(data, (bytes, bytearray)):
        text = data.decode(encoding or 'utf-8')
    else:
        text = data
    # Byte order mark
    if text.startswith('\ufeff'):
        text = text[1:]
    return text


def _to_builtin(obj: Any) -> Any:
    # Convert mapping-like objects from xmltodict to plain dicts recursively
    if isinstance(obj, list):
        return [_to_builtin(x) for x in obj]
    if isinstance(obj, collections.abc.Mapping):
        return {k: _to_builtin(v) for k, v in obj.items()}
    return obj


def _parse_xml(data: bytes | str, options: dict) -> Any:
    if xmltodict is None:
        raise RuntimeError("XML support requires the 'xmltodict' package")
    return _to_builtin(xmltodict.parse(data, **options))


def detect_format(file_name: Optional[str] = None, data_hint: Optional[str] = None) -> Optional[str]:
    """
    Returns a canonical format name among: 'json', 'yaml', 'toml', 'xml'.
    Uses the file extension first; falls back to simple data sniffing.
    """
    ext = os.path.splitext(file_name or "")[1].lower()
    if ext == '.json':
        return 'json'
    if ext in ('.yaml', '.yml'):
        return 'yaml'
    if ext == '.toml':
        return 'toml'
    if ext in ('.xml', '.xhtml'):
        return 'xml'

    if data_hint is not None:
        s = data_hint.lstrip()
        if s.startswith('{') or s.startswith('['):
            return 'json'
        if s.startswith('<'):
            return 'xml'
    return None


# --------------------------
# Public API
# --------------------------

def deserialize(data: bytes | bytearray | str,
                *,
                fmt: Optional[str] = None,
                encoding: Optional[str] = None,
                file_name: Optional[str] = None,
                **options: Any) -> Any:
    """
    Convert file content (bytes/string) to native Python structures.
    Supported fmt: 'json', 'yaml', 'toml', 'xml'.
    If fmt is None, uses the file name, then sniffing.
    Extra keyword options are passed to xmltodict.parse for 'xml'.
    """
    if fmt == 'xml' and isinstance(data, (bytes, bytearray)) and encoding is None:
        # expat honours the encoding declared by the document
        return _parse_xml(bytes(data), options)
    text = _norm_text(data, encoding=encoding)
    f = fmt or detect_format(file_name, text)
    if f == 'json':
        return json.loads(text)
    if f == 'yaml':
        return yaml.safe_load(text)
    if f == 'toml':
        return tomllib.loads(text)
    if f == 'xml':
        return _parse_xml(text, options)
    raise ValueError(f"Unsupported data format: {f!r}")


__all__ = [
    "deserialize",
    "detect_format",
]

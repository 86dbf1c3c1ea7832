from __future__ import annotations

import enum
import json
from typing import Any
import collections.abc

import yaml

# TOML is read-only (stdlib tomllib); binding tables may be written in it.
import tomllib

# XML via xmltodict, used for report export
import xmltodict


# --------------------------
# Helpers
# --------------------------

def _norm_text(data: bytes | bytearray | str) -> str:
    if isinstance(data, (bytes, bytearray)):
        return data.decode('utf-8', errors='replace')
    return data


def _to_builtin(obj: Any) -> Any:
    # Reports carry enums and tuples; documents want plain scalars and lists.
    if isinstance(obj, enum.Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [_to_builtin(x) for x in obj]
    if isinstance(obj, collections.abc.Mapping):
        return {str(_to_builtin(k)): _to_builtin(v) for k, v in obj.items()}
    return obj


# --------------------------
# Public API
# --------------------------

def deserialize(data: bytes | bytearray | str, *, fmt: str) -> Any:
    """
    Convert binding-table document text (bytes/string) to native Python structures.
    Supported fmt: 'json', 'yaml', 'toml'.
    Returns raw text when the document cannot be parsed.
    """
    text = _norm_text(data)
    f = (fmt or '').lower()
    if f == 'json':
        try:
            return json.loads(text)
        except ValueError:
            # JSON is a YAML subset; a mislabeled YAML document still loads.
            try:
                return yaml.safe_load(text)
            except yaml.YAMLError:
                return text
    if f == 'yaml':
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError:
            return text
    if f == 'toml':
        try:
            return tomllib.loads(text)
        except tomllib.TOMLDecodeError:
            return text
    raise ValueError(f"Unsupported document format: {fmt!r}")


def serialize(value: Any,
              *,
              fmt: str,
              pretty: bool = True,
              xml_root: str = "report") -> str:
    """
    Convert a native value into a textual representation.
    - fmt: 'json' | 'yaml' | 'xml'
    - For XML, if value is not a single-key dict, it is wrapped under {xml_root: value}
    """
    f = (fmt or '').lower()
    built = _to_builtin(value)
    if f == 'json':
        return json.dumps(built, ensure_ascii=False, indent=2 if pretty else None)
    if f == 'yaml':
        return yaml.safe_dump(built, sort_keys=False)
    if f == 'xml':
        if isinstance(built, dict) and len(built) == 1:
            root = built
        else:
            root = {xml_root: built}
        return xmltodict.unparse(root, pretty=pretty)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


__all__ = [
    "deserialize",
    "serialize",
]

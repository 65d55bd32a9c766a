"""Conversion of Python values into PostgreSQL array literals."""

from __future__ import annotations

from numbers import Number
from typing import Any

_UNSUPPORTED = (bytes, bytearray, dict, set, frozenset)


def _has_custom_str(value: Any) -> bool:
    return type(value).__str__ is not object.__str__


def format_array(value: Any) -> str:
    """Render ``value`` in PostgreSQL array syntax.

    Lists and tuples become ``{...}``, strings are double quoted with
    backslashes and quotes escaped, integers are written as is and objects
    with their own ``__str__`` are formatted as their string form.  Any
    other value (``None``, floats, booleans, mappings) renders as an empty
    string.
    """
    if isinstance(value, (list, tuple)):
        rendered = ""
        for item in value:
            if rendered:
                rendered += ","
            rendered += format_array(item)
        return "{" + rendered + "}"
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(value, bool):
        return ""
    if isinstance(value, int):
        return str(value)
    if value is None or isinstance(value, Number) or isinstance(value, _UNSUPPORTED):
        return ""
    if _has_custom_str(value):
        return format_array(str(value))
    return ""
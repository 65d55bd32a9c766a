"""Holder of a database response that can be decoded into Python objects."""

from __future__ import annotations

import dataclasses
import enum
import json
import logging
import types
from dataclasses import dataclass
from numbers import Number
from typing import Any

logger = logging.getLogger(__name__)


class ScanError(Exception):
    """Raised when a response cannot be decoded into the target."""


class NotAContainerError(ScanError):
    """Raised when the target cannot be filled in place."""

    def __init__(self) -> None:
        super().__init__("item to input data is not a pointer")


class UnsupportedTypeError(ScanError):
    """Raised when the target is of a type the scanner cannot fill."""

    def __init__(self) -> None:
        super().__init__("item to input data has an unsupported type")


class RowCountError(ScanError):
    """Raised when a single record was expected but another count came back."""

    def __init__(self, count: int) -> None:
        super().__init__("rows returned is not 1")
        self.count = count


class _Kind(enum.Enum):
    LIST = "list"
    MAP = "map"
    STRUCT = "struct"


_IMMUTABLE = (str, bytes, tuple, frozenset, Number)


def _target_kind(target: Any) -> _Kind:
    if target is None or isinstance(target, _IMMUTABLE):
        raise NotAContainerError()
    if isinstance(target, list):
        return _Kind.LIST
    if isinstance(target, dict):
        return _Kind.MAP
    if (
        hasattr(target, "__dict__")
        and not isinstance(target, (type, types.ModuleType))
        and not callable(target)
    ):
        return _Kind.STRUCT
    raise UnsupportedTypeError()


def _fill_struct(target: Any, row: dict) -> None:
    if dataclasses.is_dataclass(target):
        names = [field.name for field in dataclasses.fields(target)]
        by_lower = {name.lower(): name for name in names}
        for key, value in row.items():
            if key in names:
                setattr(target, key, value)
            elif key.lower() in by_lower:
                setattr(target, by_lower[key.lower()], value)
        return
    for key, value in row.items():
        setattr(target, key, value)


def _fill_record(kind: _Kind, target: Any, row: Any) -> None:
    if not isinstance(row, dict):
        raise ScanError(f"cannot decode {type(row).__name__} into {type(target).__name__}")
    if kind is _Kind.MAP:
        target.update(row)
    else:
        _fill_struct(target, row)


@dataclass
class PrestScanner:
    """A JSON response from the database, together with any error it carried."""

    buff: bytes | None = None
    error: BaseException | None = None
    is_query: bool = False

    def _decode(self) -> Any:
        try:
            return json.loads(self.buff or b"")
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ScanError(str(exc)) from exc

    def scan(self, target: Any) -> int:
        """Fill ``target`` (a list, dict or attribute object) and return the row count."""
        logger.debug("database return: %s", (self.buff or b"").decode("utf-8", "replace"))
        kind = _target_kind(target)
        if self.is_query:
            return self._scan_query(kind, target)
        return self._scan_not_query(kind, target)

    def _scan_query(self, kind: _Kind, target: Any) -> int:
        decoded = self._decode()
        if kind is _Kind.LIST:
            if decoded is None:
                target.clear()
            elif isinstance(decoded, list):
                target[:] = decoded
            else:
                raise ScanError(f"cannot decode {type(decoded).__name__} into list")
            return len(target)
        if not isinstance(decoded, list) or not all(isinstance(r, dict) for r in decoded):
            raise ScanError("expected a list of records")
        if not decoded:
            return 0
        if len(decoded) != 1:
            raise RowCountError(len(decoded))
        _fill_record(kind, target, decoded[0])
        return 1

    def _scan_not_query(self, kind: _Kind, target: Any) -> int:
        if kind is _Kind.LIST:
            raise UnsupportedTypeError()
        _fill_record(kind, target, self._decode())
        return 1
"""
odata_explorer.odata.types - Column type inference
==================================================

Assigns a semantic type to each column of loaded rows so filter literals
can be encoded correctly.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence
import re

_ISO_DATETIME_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}")


class ColumnType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    OBJECT = "object"


def classify(value: Any) -> Optional[ColumnType]:
    """
    Type of a single cell value, None for null.

    Examples
    --------
    >>> classify("2024-01-31T10:15:00")
    <ColumnType.DATE: 'date'>
    >>> classify(True)
    <ColumnType.BOOLEAN: 'boolean'>
    """
    if value is None:
        return None
    # bool is an int subclass
    if isinstance(value, bool):
        return ColumnType.BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return ColumnType.NUMBER
    if isinstance(value, (datetime, date)):
        return ColumnType.DATE
    if isinstance(value, str):
        return ColumnType.DATE if _ISO_DATETIME_PREFIX.match(value) else ColumnType.STRING
    return ColumnType.OBJECT


def extract_columns(rows: Iterable[Any]) -> List[str]:
    """Ordered union of the keys of every dict row."""
    seen: Dict[str, None] = {}
    for row in rows:
        if isinstance(row, Mapping):
            for key in row:
                seen.setdefault(str(key), None)
    return list(seen)


def infer_column_types(
    rows: Sequence[Any],
    known_columns: Iterable[str] = (),
) -> Dict[str, ColumnType]:
    """
    Infer a type per column from the first non-null value seen.

    Parameters
    ----------
    rows : sequence of dict
        Loaded rows, scanned in order
    known_columns : iterable of str
        Columns to resolve in addition to the keys present in ``rows``

    Returns
    -------
    dict
        Column name -> ColumnType. Columns that are null throughout are
        left out.
    """
    columns: Dict[str, None] = dict.fromkeys(known_columns)
    columns.update(dict.fromkeys(extract_columns(rows)))

    out: Dict[str, ColumnType] = {}
    for column in columns:
        for row in rows:
            if not isinstance(row, Mapping):
                continue
            kind = classify(row.get(column))
            if kind is not None:
                out[column] = kind
                break
    return out


class ColumnTypeMap(Mapping[str, ColumnType]):
    """
    Column types for the active resource.

    Entries are only ever added: once a column has a type it keeps it
    until :meth:`clear` is called on resource switch.
    """

    def __init__(self) -> None:
        self._types: Dict[str, ColumnType] = {}

    def __getitem__(self, key: str) -> ColumnType:
        return self._types[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)

    def merge(self, inferred: Mapping[str, ColumnType]) -> None:
        for column, kind in inferred.items():
            self._types.setdefault(column, kind)

    def observe(self, rows: Sequence[Any]) -> None:
        """Infer types for columns not yet known and merge them in."""
        missing = [c for c in extract_columns(rows) if c not in self._types]
        if missing:
            self.merge(infer_column_types(rows, missing))

    def clear(self) -> None:
        self._types.clear()

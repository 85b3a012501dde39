"""
odata_explorer.odata.filters - $orderby / $filter compilation
=============================================================

Turns table-level sort and filter intent into OData v2 query fragments.

The compiler never raises on bad input: descriptors that cannot be
expressed safely are dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union
import math
import re

from odata_explorer.odata.types import ColumnType

_UNSAFE_FIELD_CHARS = re.compile(r"[^A-Za-z0-9_/.]")
# fromisoformat before 3.11 only takes 3 or 6 fraction digits
_FRACTION = re.compile(r"(?<=:\d{2})\.(\d+)")


def escape_odata_literal(value: str) -> str:
    """
    Escape a string value for use in OData $filter expressions.

    Parameters
    ----------
    value : str
        The value to escape

    Returns
    -------
    str
        Escaped value safe for OData filters

    Examples
    --------
    >>> escape_odata_literal("O'Brien")
    "O''Brien"
    """
    return value.replace("'", "''")


def decode_string_literal(literal: str) -> str:
    """
    Reverse :func:`encode_string`.

    Examples
    --------
    >>> decode_string_literal("'O''Brien'")
    "O'Brien"
    """
    if len(literal) >= 2 and literal[0] == literal[-1] == "'":
        literal = literal[1:-1]
    return literal.replace("''", "'")


def sanitize_field(name: Any) -> str:
    """
    Drop every character outside ``[A-Za-z0-9_/.]``.

    Examples
    --------
    >>> sanitize_field("Name; drop")
    'Namedrop'
    >>> sanitize_field("Customer/Address.City")
    'Customer/Address.City'
    """
    if name is None:
        return ""
    return _UNSAFE_FIELD_CHARS.sub("", str(name))


# ---------------- descriptors ----------------

class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, value: Any) -> "SortDirection":
        """Accepts "asc"/"desc" in any case and the table convention 1/-1."""
        if isinstance(value, cls):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return cls.DESC if value < 0 else cls.ASC
        if isinstance(value, str) and value.strip().lower() in ("desc", "descending", "-1"):
            return cls.DESC
        return cls.ASC


class MatchMode(str, Enum):
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    CONTAINS = "contains"
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"

    @classmethod
    def parse(cls, value: Any) -> "MatchMode":
        """Unknown or missing modes become CONTAINS; the legacy "is" alias means EQUALS."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return cls.CONTAINS
        key = value.strip().lower()
        if key == "is":
            return cls.EQUALS
        for mode in cls:
            if mode.value.lower() == key:
                return mode
        return cls.CONTAINS


@dataclass(frozen=True)
class SortDescriptor:
    field: str
    direction: SortDirection = SortDirection.ASC

    def __post_init__(self) -> None:
        object.__setattr__(self, "direction", SortDirection.parse(self.direction))


@dataclass(frozen=True)
class FilterDescriptor:
    field: str
    value: Any
    match_mode: Optional[Union[MatchMode, str]] = None


# ---------------- $orderby ----------------

def compile_order_by(
    multi_sort: Optional[Sequence[SortDescriptor]] = None,
    single: Optional[SortDescriptor] = None,
) -> Optional[str]:
    """
    Build an $orderby value.

    A non-empty ``multi_sort`` wins over ``single``.

    Examples
    --------
    >>> compile_order_by([SortDescriptor("Name"), SortDescriptor("Price", "desc")])
    'Name asc,Price desc'
    """
    sort = list(multi_sort) if multi_sort else ([single] if single else [])

    fragments = []
    for s in sort:
        field = sanitize_field(s.field)
        if not field:
            continue
        fragments.append(f"{field} {SortDirection.parse(s.direction).value}")
    return ",".join(fragments) or None


# ---------------- literals ----------------

def _format_number(n: Union[int, float, Decimal]) -> str:
    if isinstance(n, int):
        return str(n)
    if isinstance(n, Decimal):
        return format(n.normalize(), "f") if n == n.to_integral_value() else str(n)
    return str(int(n)) if n.is_integer() else repr(n)


def encode_number(value: Any) -> str:
    """Numeric literal, "0" when the value is not a finite number."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Decimal):
        return _format_number(value) if value.is_finite() else "0"
    try:
        n = float(str(value).strip()) if not isinstance(value, float) else value
    except (TypeError, ValueError):
        return "0"
    if not math.isfinite(n):
        return "0"
    return _format_number(n)


def encode_boolean(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return "true" if value.strip().lower() in ("true", "1") else "false"
    if isinstance(value, (int, float, Decimal)):
        return "true" if value == 1 else "false"
    return "false"


def _to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # epoch milliseconds
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        text = _FRACTION.sub(lambda m: "." + (m.group(1) + "000000")[:6], text, count=1)
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def encode_date(value: Any) -> str:
    """Quoted ISO-8601 UTC timestamp with millisecond precision, '' if unparsable."""
    dt = _to_datetime(value)
    if dt is None:
        return "''"
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return "'" + dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z'"


def encode_string(value: Any) -> str:
    if isinstance(value, bool):
        text = "true" if value else "false"
    else:
        text = str(value)
    return f"'{escape_odata_literal(text)}'"


def encode_literal(value: Any, column_type: Optional[ColumnType]) -> str:
    """Protocol literal for ``value`` according to its column type."""
    if column_type == ColumnType.NUMBER:
        return encode_number(value)
    if column_type == ColumnType.BOOLEAN:
        return encode_boolean(value)
    if column_type == ColumnType.DATE:
        return encode_date(value)
    return encode_string(value)


# ---------------- $filter ----------------

def effective_match_mode(mode: Any, column_type: Optional[ColumnType]) -> MatchMode:
    """
    Match mode actually applied to a column.

    Numbers, booleans and dates have no substring semantics, so every mode
    other than NOT_EQUALS collapses to EQUALS for them.
    """
    parsed = MatchMode.parse(mode)
    if column_type in (ColumnType.NUMBER, ColumnType.BOOLEAN, ColumnType.DATE):
        return MatchMode.NOT_EQUALS if parsed == MatchMode.NOT_EQUALS else MatchMode.EQUALS
    return parsed


def compile_clause(field: str, mode: MatchMode, literal: str) -> str:
    if mode == MatchMode.STARTS_WITH:
        return f"startswith({field},{literal})"
    if mode == MatchMode.ENDS_WITH:
        return f"endswith({field},{literal})"
    if mode == MatchMode.EQUALS:
        return f"{field} eq {literal}"
    if mode == MatchMode.NOT_EQUALS:
        return f"{field} ne {literal}"
    # v2 dialect: literal first
    return f"substringof({literal},{field})"


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def compile_filter(
    filters: Optional[Iterable[FilterDescriptor]],
    type_map: Optional[Mapping[str, ColumnType]] = None,
) -> Optional[str]:
    """
    Build a $filter value from active column filters.

    Parameters
    ----------
    filters : iterable of FilterDescriptor
        Active filters, combined with "and"
    type_map : mapping, optional
        Column types; unknown columns are treated as strings

    Returns
    -------
    str or None
        None when no clause survives

    Examples
    --------
    >>> compile_filter([FilterDescriptor("Name", "foo", "contains")])
    "substringof('foo',Name)"
    >>> compile_filter([FilterDescriptor("Price", "10", "startsWith")], {"Price": ColumnType.NUMBER})
    'Price eq 10'
    """
    types = type_map or {}
    clauses: List[str] = []

    for f in filters or ():
        if _is_empty(f.value):
            continue
        field = sanitize_field(f.field)
        if not field:
            continue
        column_type = types.get(f.field) or types.get(field)
        if column_type == ColumnType.OBJECT:
            continue
        mode = effective_match_mode(f.match_mode, column_type)
        clauses.append(compile_clause(field, mode, encode_literal(f.value, column_type)))

    return " and ".join(clauses) or None


# ---------------- table widget adapters ----------------

def filters_from_table(metadata: Optional[Mapping[str, Any]]) -> List[FilterDescriptor]:
    """
    Convert table filter metadata into descriptors.

    Accepts ``{field: {"value": ..., "matchMode": ...}}`` where each value
    may also be a list of such entries.
    """
    out: List[FilterDescriptor] = []
    for field, meta in (metadata or {}).items():
        entries = meta if isinstance(meta, list) else [meta]
        for entry in entries:
            if not isinstance(entry, Mapping):
                continue
            mode = entry.get("matchMode", entry.get("match_mode"))
            out.append(FilterDescriptor(field=field, value=entry.get("value"), match_mode=mode))
    return out


def sort_from_table(
    multi_sort_meta: Optional[Sequence[Mapping[str, Any]]] = None,
    sort_field: Optional[str] = None,
    sort_order: Any = 1,
) -> List[SortDescriptor]:
    """
    Convert table sort metadata into descriptors.

    ``multi_sort_meta`` entries look like ``{"field": "Name", "order": -1}``.
    """
    if multi_sort_meta:
        return [
            SortDescriptor(str(m.get("field") or ""), m.get("order", 1))
            for m in multi_sort_meta
            if isinstance(m, Mapping)
        ]
    if sort_field:
        return [SortDescriptor(sort_field, sort_order)]
    return []


def describe(filters: Iterable[FilterDescriptor]) -> Dict[str, Any]:
    """Field -> value view of the active filters, for logging."""
    return {f.field: f.value for f in filters if not _is_empty(f.value)}

"""
odata_explorer.odata.formatting - Cell value formatting
=======================================================

Display helpers for table views. Kept apart from query compilation:
legacy ``/Date(ms)/`` strings are only interpreted here.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import json
import re

_LEGACY_DATE = re.compile(r"^/Date\((-?\d+)(?:([+-])(\d{2})(\d{2}))?\)/$")


def parse_legacy_date(value: Any) -> Optional[datetime]:
    """
    Parse an OData v2 JSON date such as ``/Date(1700000000000)/``.

    An optional ``+hhmm``/``-hhmm`` suffix sets the offset of the result.

    Examples
    --------
    >>> parse_legacy_date("/Date(0)/")
    datetime.datetime(1970, 1, 1, 0, 0, tzinfo=datetime.timezone.utc)
    >>> parse_legacy_date("2024-01-01") is None
    True
    """
    if not isinstance(value, str):
        return None
    m = _LEGACY_DATE.match(value.strip())
    if not m:
        return None

    millis, sign, hh, mm = m.groups()
    tz = timezone.utc
    if sign:
        offset = timedelta(hours=int(hh), minutes=int(mm))
        tz = timezone(offset if sign == "+" else -offset)
    try:
        return datetime.fromtimestamp(int(millis) / 1000.0, tz=timezone.utc).astimezone(tz)
    except (OverflowError, OSError, ValueError):
        return None


def format_value(value: Any) -> str:
    """
    Render a cell value as text.

    Examples
    --------
    >>> format_value(None)
    ''
    >>> format_value({"a": 1})
    '{"a":1}'
    >>> format_value(True)
    'true'
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        try:
            return json.dumps(value, separators=(",", ":"), default=str)
        except (TypeError, ValueError):
            return str(value)
    legacy = parse_legacy_date(value)
    if legacy is not None:
        return legacy.isoformat()
    return str(value)

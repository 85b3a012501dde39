"""
odata_explorer.odata.service - OData Service Client
===================================================

Service-scoped page reads: query URL assembly and interpretation of the
response envelopes OData v2/v4 services return.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple
from urllib.parse import quote
import math

from odata_explorer.core.session import ODataSession, ODataUpstreamError

# same unreserved set as JavaScript's encodeURIComponent
_URI_COMPONENT_SAFE = "-_.!~*'()"


# ---------------- response envelopes ----------------

def _value_array(payload: Any) -> Optional[List[Any]]:
    if isinstance(payload, dict) and isinstance(payload.get("value"), list):
        return payload["value"]
    return None


def _d_results(payload: Any) -> Optional[List[Any]]:
    d = payload.get("d") if isinstance(payload, dict) else None
    if isinstance(d, dict) and isinstance(d.get("results"), list):
        return d["results"]
    return None


def _bare_array(payload: Any) -> Optional[List[Any]]:
    return payload if isinstance(payload, list) else None


def _d_entity(payload: Any) -> Optional[List[Any]]:
    if isinstance(payload, dict) and len(payload) == 1 and isinstance(payload.get("d"), dict):
        return [payload["d"]]
    return None


def _is_raw_body(payload: Any) -> bool:
    """True for the text wrapper ODataSession.fetch returns on non-JSON bodies."""
    return isinstance(payload, dict) and set(payload) == {"raw", "content_type"}


def _single_object(payload: Any) -> Optional[List[Any]]:
    return [payload] if payload else None


# Tried in order; first non-None wins. Append new shapes here.
ROW_EXTRACTORS: List[Tuple[str, Callable[[Any], Optional[List[Any]]]]] = [
    ("value", _value_array),
    ("d.results", _d_results),
    ("array", _bare_array),
    ("d", _d_entity),
    ("object", _single_object),
]

TOTAL_COUNT_FIELDS: List[Tuple[str, ...]] = [
    ("@odata.count",),
    ("odata.count",),
    ("count",),
    ("d", "__count"),
]


def extract_rows(payload: Any) -> List[Any]:
    """
    Row array from any accepted response envelope.

    Examples
    --------
    >>> extract_rows({"d": {"results": [{"ID": 1}]}})
    [{'ID': 1}]
    >>> extract_rows({"ID": 1})
    [{'ID': 1}]
    """
    for _, extractor in ROW_EXTRACTORS:
        rows = extractor(payload)
        if rows is not None:
            return rows
    return []


def _as_count(candidate: Any) -> Optional[int]:
    if isinstance(candidate, bool):
        return None
    if isinstance(candidate, str):
        try:
            candidate = float(candidate.strip())
        except ValueError:
            return None
    if isinstance(candidate, (int, float)) and math.isfinite(candidate):
        return int(candidate)
    return None


def extract_total_count(payload: Any) -> Optional[int]:
    """First numeric (or numeric string) total count field, None if absent."""
    if not isinstance(payload, dict):
        return None
    for path in TOTAL_COUNT_FIELDS:
        node: Any = payload
        for key in path:
            node = node.get(key) if isinstance(node, dict) else None
        if node is None:
            continue
        count = _as_count(node)
        if count is not None:
            return count
    return None


# ---------------- query assembly ----------------

def encode_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def build_query_url(
    resource_url: str,
    *,
    top: Optional[int] = None,
    skip: Optional[int] = None,
    orderby: Optional[str] = None,
    filter_expr: Optional[str] = None,
    count_param: Optional[Tuple[str, str]] = None,
) -> str:
    """
    Assemble a page query in the fixed parameter order.

    ``$format=json`` always comes first; $top and $skip are only sent when
    positive; the counting parameter comes last.

    Examples
    --------
    >>> build_query_url("https://h/svc/Products", top=25, count_param=("$inlinecount", "allpages"))
    'https://h/svc/Products?$format=json&$top=25&$inlinecount=allpages'
    """
    parts = ["$format=json"]
    if top is not None and int(top) > 0:
        parts.append(f"$top={int(top)}")
    if skip is not None and int(skip) > 0:
        parts.append(f"$skip={int(skip)}")
    if orderby:
        parts.append(f"$orderby={encode_component(orderby)}")
    if filter_expr:
        parts.append(f"$filter={encode_component(filter_expr)}")
    if count_param:
        parts.append(f"{count_param[0]}={count_param[1]}")

    sep = "&" if "?" in resource_url else "?"
    return f"{resource_url}{sep}{'&'.join(parts)}"


@dataclass
class PageResponse:
    """Rows and optional total count of one fetched page."""
    rows: List[Any] = field(default_factory=list)
    total: Optional[int] = None
    url: str = ""


class ODataService:
    """
    Page reader for the resources of one service root.

    Parameters
    ----------
    sess : ODataSession
        Active OData session (anything with ``base`` and ``fetch``)

    Examples
    --------
    >>> with ODataSession(cfg) as sess:
    ...     api = ODataService(sess)
    ...     page = api.read_page("Products", top=25, orderby="Name asc")
    ...     print(page.total, len(page.rows))
    """

    def __init__(self, sess: ODataSession) -> None:
        self.sess = sess

    def resource_url(self, resource: str) -> str:
        return f"{self.sess.base.rstrip('/')}/{resource.lstrip('/')}"

    def read_page(
        self,
        resource: str,
        *,
        top: Optional[int] = None,
        skip: Optional[int] = None,
        orderby: Optional[str] = None,
        filter_expr: Optional[str] = None,
        count_param: Optional[Tuple[str, str]] = None,
    ) -> PageResponse:
        """
        Fetch one page of a resource.

        Parameters
        ----------
        resource : str
            Resource (entity set) name below the service root
        top : int, optional
            Page size ($top)
        skip : int, optional
            Rows to skip ($skip)
        orderby : str, optional
            Compiled $orderby
        filter_expr : str, optional
            Compiled $filter
        count_param : tuple, optional
            Counting parameter name and value

        Returns
        -------
        PageResponse
            Extracted rows and total count

        Raises
        ------
        ODataUpstreamError
            If the service rejects the request or answers with a non-JSON body
        """
        url = build_query_url(
            self.resource_url(resource),
            top=top,
            skip=skip,
            orderby=orderby,
            filter_expr=filter_expr,
            count_param=count_param,
        )
        payload = self.sess.fetch(url, headers={"Accept": "application/json"})
        if _is_raw_body(payload):
            content_type = payload.get("content_type") or "unknown content type"
            raise ODataUpstreamError(
                200,
                payload.get("raw") or "",
                url,
                {"Content-Type": content_type},
                message=f"Expected a JSON response, got {content_type}",
            )
        return PageResponse(
            rows=extract_rows(payload),
            total=extract_total_count(payload),
            url=url,
        )

"""
odata_explorer.core.session - OData HTTP Session Management
============================================================

Low-level session handling for a single OData service root with:
- Basic and Bearer token authentication
- Automatic retry with exponential backoff
- Best-effort extraction of human-readable server error messages
- The error types surfaced by discovery and paging
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union
import logging
import time
import xml.etree.ElementTree as ET

import requests
from requests import Response, Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


class ODataUpstreamError(RuntimeError):
    """
    Exception raised when the OData service returns an error.

    Attributes
    ----------
    status : int
        HTTP status code
    body : str
        Response body (truncated for display)
    url : str
        The URL that was called
    headers : dict
        Response headers
    message : str
        Human-readable message extracted from the error body
    """

    def __init__(
        self,
        status: int,
        body: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        message: Optional[str] = None,
    ):
        snippet = (body or "")[:1200]
        super().__init__(f"OData upstream error {status} for {url}: {snippet}")
        self.status = status
        self.body = body or ""
        self.url = url
        self.headers = headers or {}
        self.message = message or snippet or f"HTTP {status}"


class DiscoveryError(RuntimeError):
    """Neither the service document nor $metadata yielded any resources."""


class DataFetchError(RuntimeError):
    """
    A page load failed for a reason other than counting support.

    Attributes
    ----------
    resource : str
        Resource whose page was being loaded
    status : int or None
        HTTP status, or None when the transport itself failed
    message : str
        Best-effort message extracted from the server response
    """

    def __init__(self, resource: str, message: str, status: Optional[int] = None):
        super().__init__(f"Failed to fetch data for {resource}: {message}")
        self.resource = resource
        self.message = message
        self.status = status


def extract_error_message(payload: Any) -> Optional[str]:
    """
    Probe an error body for a human-readable message.

    Looks at ``error.message.value``, ``error.message``, ``message.value``
    and ``message`` in that order.

    Examples
    --------
    >>> extract_error_message({"error": {"message": {"value": "boom"}}})
    'boom'
    """
    if not isinstance(payload, dict):
        return None

    candidates = []
    err = payload.get("error")
    if isinstance(err, dict):
        candidates.append(err.get("message"))
    candidates.append(payload.get("message"))

    for c in candidates:
        if isinstance(c, dict):
            c = c.get("value")
        if isinstance(c, str) and c.strip():
            return c.strip()
    return None


def extract_xml_error_message(text: Optional[str]) -> Optional[str]:
    """
    First non-empty <message> of an XML error body, as OData v2 services send them.

    Examples
    --------
    >>> extract_xml_error_message("<error><code>X</code><message>boom</message></error>")
    'boom'
    """
    if not text or not text.lstrip().startswith("<"):
        return None
    try:
        root = ET.fromstring(text)
    except ET.ParseError:
        return None
    for node in root.iter():
        if isinstance(node.tag, str) and node.tag.split("}", 1)[-1] == "message":
            message = (node.text or "").strip()
            if message:
                return message
    return None


@dataclass
class ODataAuth:
    """
    Authentication configuration for an OData service.

    Parameters
    ----------
    kind : str
        Either "basic" or "bearer"
    value : tuple or str
        For basic: (username, password) tuple
        For bearer: access token string

    Examples
    --------
    >>> auth = ODataAuth("basic", ("USER", "PASSWORD"))
    >>> auth = ODataAuth("bearer", "eyJ...")
    """
    kind: str  # "basic" | "bearer"
    value: Union[Tuple[str, str], str]  # (user, pass) or access_token


@dataclass
class ODataConfig:
    """
    Connection configuration for an OData service root.

    Parameters
    ----------
    service_url : str
        Service root URL, e.g. "https://host/odata/Northwind.svc"
    auth : ODataAuth
        Authentication configuration
    lang : str
        Accept-Language value (default: "EN")
    timeout : float
        Request timeout in seconds (default: 60.0)
    retries : int
        Number of retry attempts for 429/5xx (default: 3)
    backoff : float
        Backoff factor for retries (default: 0.5)
    verify : bool or str
        SSL verification (True, False, or path to CA bundle)
    user_agent : str
        User-Agent header value
    page_size : int
        Default page size for browsing (default: 25)
    count_strategy : str
        Initial counting convention: "count", "inlinecount" or "none"

    Examples
    --------
    >>> cfg = ODataConfig(
    ...     service_url="https://services.odata.org/V2/Northwind/Northwind.svc",
    ...     auth=ODataAuth("basic", ("USER", "PASS")),
    ... )
    """
    service_url: str
    auth: ODataAuth
    lang: str = "EN"
    timeout: float = 60.0
    retries: int = 3
    backoff: float = 0.5
    verify: Union[bool, str] = True
    user_agent: str = "odata-explorer/0.1"
    page_size: int = 25
    count_strategy: str = "inlinecount"


class ODataSession:
    """
    Low-level HTTP session bound to one OData service root.

    Handles authentication and retries. Use as a context manager for
    automatic cleanup.

    Parameters
    ----------
    cfg : ODataConfig
        Connection configuration

    Examples
    --------
    >>> cfg = ODataConfig(...)
    >>> with ODataSession(cfg) as sess:
    ...     body = sess.get_text("$metadata")
    """

    def __init__(self, cfg: ODataConfig) -> None:
        self.cfg = cfg
        self.base = cfg.service_url.strip().rstrip("/")
        self.timeout = float(cfg.timeout)
        self.verify = cfg.verify
        self.logger = logging.getLogger("odata_explorer.odata")

        self.session = self._build_session()

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()

    def __enter__(self) -> "ODataSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- auth/session ----------------

    def _build_session(self) -> Session:
        sess = requests.Session()

        # auth
        if self.cfg.auth.kind == "basic":
            sess.auth = self.cfg.auth.value  # type: ignore[assignment]
        elif self.cfg.auth.kind == "bearer":
            sess.headers.update({"Authorization": f"Bearer {self.cfg.auth.value}"})
        else:
            raise ValueError("auth.kind must be 'basic' or 'bearer'")

        sess.headers.update({
            "Accept": "application/json",
            "Accept-Language": self.cfg.lang.lower(),
            "DataServiceVersion": "2.0",
            "MaxDataServiceVersion": "2.0",
            "User-Agent": self.cfg.user_agent,
        })

        retry = Retry(
            total=self.cfg.retries,
            backoff_factor=self.cfg.backoff,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset({"GET", "HEAD", "OPTIONS"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=20)
        sess.mount("https://", adapter)
        sess.mount("http://", adapter)
        return sess

    # ---------------- helpers ----------------

    def url(self, path: str = "") -> str:
        """Absolute URL for a path below the service root."""
        path = path.lstrip("/")
        return f"{self.base}/{path}" if path else self.base

    def _json_or_text(self, r: Response) -> Any:
        ctype = (r.headers.get("Content-Type") or "").lower()
        if "json" in ctype:
            try:
                return r.json()
            except ValueError:
                pass
        return {"raw": r.text, "content_type": r.headers.get("Content-Type", "")}

    def _extract_error(self, r: Response) -> str:
        try:
            data = r.json()
        except ValueError:
            data = None
        message = extract_error_message(data) or extract_xml_error_message(r.text)
        if message:
            return message
        text = (r.text or "").strip()
        if text and len(text) <= 300 and "<" not in text:
            return text
        return f"HTTP {r.status_code} {r.reason or ''}".strip()

    def _raise_for_error(self, r: Response, url: str) -> None:
        if r.status_code >= 400:
            raise ODataUpstreamError(
                r.status_code,
                r.text,
                url,
                dict(r.headers),
                message=self._extract_error(r),
            )

    def _request(self, url: str, *, headers: Dict[str, str]) -> Response:
        t0 = time.perf_counter()
        r = self.session.request(
            method="GET",
            url=url,
            headers=headers,
            timeout=self.timeout,
            verify=self.verify,
        )
        dt = (time.perf_counter() - t0) * 1000.0
        self.logger.debug("GET %s %s %sms", url, r.status_code, round(dt, 1))
        self._raise_for_error(r, url)
        return r

    # ---------------- public ops ----------------

    def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> Any:
        """
        Execute an authenticated GET against an absolute URL.

        Parameters
        ----------
        url : str
            Fully assembled URL, query string included
        headers : dict, optional
            Additional HTTP headers

        Returns
        -------
        Any
            Parsed JSON body, or ``{"raw": ..., "content_type": ...}``

        Raises
        ------
        ODataUpstreamError
            On any HTTP status >= 400
        """
        h = dict(self.session.headers)
        if headers:
            h.update(headers)
        r = self._request(url, headers=h)
        return self._json_or_text(r)

    def get_text(
        self,
        path: str = "",
        *,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Execute a GET request below the service root and return raw text.

        Useful for the service document and $metadata.
        """
        headers = dict(self.session.headers)

        if path == "$metadata" or path.endswith("/$metadata"):
            headers["Accept"] = "application/xml"

        if extra_headers:
            headers.update(extra_headers)

        r = self._request(self.url(path), headers=headers)
        return r.text

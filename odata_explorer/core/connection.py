"""
odata_explorer.core.connection - High-level connection management
=================================================================

Provides a ConnectionContext that owns the HTTP session and hands out
discovery and paging helpers bound to it.
"""

from __future__ import annotations

import os
from typing import List, Optional, TYPE_CHECKING

from odata_explorer.core.session import ODataAuth, ODataConfig, ODataSession

if TYPE_CHECKING:
    from odata_explorer.odata.discovery import ResourceDescriptor
    from odata_explorer.odata.pagination import PaginationController


def clean_service_url(url: Optional[str]) -> str:
    """Trim whitespace and a trailing slash from a service root URL."""
    return (url or "").strip().rstrip("/")


class ConnectionContext:
    """
    High-level connection manager for one OData service root.

    Supports environment variable configuration and context manager usage.

    Parameters
    ----------
    service_url : str, optional
        Service root URL. Falls back to ODATA_SERVICE_URL env var.
    user : str, optional
        Username for basic auth. Falls back to ODATA_USER env var.
    password : str, optional
        Password for basic auth. Falls back to ODATA_PASS env var.
    bearer_token : str, optional
        Bearer token for OAuth. Falls back to ODATA_BEARER_TOKEN env var.
    verify : bool, optional
        SSL verification. Falls back to ODATA_VERIFY_TLS env var.
    timeout : float
        Request timeout in seconds.
    page_size : int, optional
        Default page size. Falls back to ODATA_PAGE_SIZE env var, then 25.
    count_strategy : str, optional
        Initial counting convention. Falls back to ODATA_COUNT_STRATEGY,
        then "inlinecount".

    Examples
    --------
    >>> with ConnectionContext(
    ...     service_url="https://services.odata.org/V2/Northwind/Northwind.svc/",
    ...     user="USER",
    ...     password="PASS",
    ... ) as conn:
    ...     resources = conn.discover_resources()
    ...     pager = conn.browse()
    ...     page = pager.load_page(resources[0].name, skip=0)
    """

    def __init__(
        self,
        service_url: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        bearer_token: Optional[str] = None,
        verify: Optional[bool] = None,
        timeout: float = 60.0,
        page_size: Optional[int] = None,
        count_strategy: Optional[str] = None,
    ) -> None:
        # Resolve from environment if not provided
        self._service_url = clean_service_url(service_url or os.environ.get("ODATA_SERVICE_URL"))
        self._user = user or os.environ.get("ODATA_USER", "")
        self._password = password or os.environ.get("ODATA_PASS", "")
        self._bearer_token = bearer_token or os.environ.get("ODATA_BEARER_TOKEN", "")

        if verify is not None:
            self._verify = verify
        else:
            self._verify = os.environ.get("ODATA_VERIFY_TLS", "true").lower() != "false"

        self._timeout = timeout
        self._page_size = int(page_size or os.environ.get("ODATA_PAGE_SIZE", "25"))
        self._count_strategy = count_strategy or os.environ.get("ODATA_COUNT_STRATEGY", "inlinecount")

        # Validate configuration
        if not self._service_url:
            raise ValueError(
                "Missing service_url. Set ODATA_SERVICE_URL environment variable "
                "or pass service_url parameter."
            )

        if not self._bearer_token and not (self._user and self._password):
            raise ValueError(
                "Missing credentials. Set ODATA_USER/ODATA_PASS or ODATA_BEARER_TOKEN "
                "environment variables, or pass user/password or bearer_token parameters."
            )

        self._session: Optional[ODataSession] = None

    @property
    def session(self) -> ODataSession:
        """Get or create the underlying OData session."""
        if self._session is None:
            self._session = self._build_session()
        return self._session

    def _build_session(self) -> ODataSession:
        if self._bearer_token:
            auth = ODataAuth("bearer", self._bearer_token)
        else:
            auth = ODataAuth("basic", (self._user, self._password))

        cfg = ODataConfig(
            service_url=self._service_url,
            auth=auth,
            verify=self._verify,
            timeout=self._timeout,
            page_size=self._page_size,
            count_strategy=self._count_strategy,
        )
        return ODataSession(cfg)

    def close(self) -> None:
        """Close the connection."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "ConnectionContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def discover_resources(self) -> List["ResourceDescriptor"]:
        """
        Discover the resources exposed by the service.

        Raises
        ------
        DiscoveryError
            If neither the service document nor $metadata lists anything
        """
        # Import here to avoid circular imports
        from odata_explorer.odata.discovery import ResourceDiscovery
        return ResourceDiscovery(self.session).discover()

    def browse(self) -> "PaginationController":
        """
        Create a pagination controller bound to this connection.

        Each controller keeps its own resource session (offsets, count
        strategy, column types).
        """
        from odata_explorer.odata.pagination import PaginationController
        sess = self.session
        return PaginationController(
            sess,
            page_size=sess.cfg.page_size,
            count_strategy=sess.cfg.count_strategy,
        )

    @property
    def service_url(self) -> str:
        """The configured service root URL."""
        return self._service_url

    @property
    def page_size(self) -> int:
        return self._page_size

"""
odata_explorer.api.gateway - FastAPI OData Gateway
==================================================

Optional REST API gateway exposing discovery and lazy page loads.
"""

from __future__ import annotations

import os
import threading
import time
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, HTTPException, Query, Path as PathParam, Header, Depends
from fastapi.middleware.cors import CORSMiddleware

from odata_explorer.core.connection import clean_service_url
from odata_explorer.core.session import (
    DataFetchError,
    DiscoveryError,
    ODataAuth,
    ODataConfig,
    ODataSession,
)
from odata_explorer.odata.discovery import ResourceDescriptor, ResourceDiscovery, filter_resources
from odata_explorer.odata.filters import filters_from_table, sort_from_table
from odata_explorer.odata.pagination import PaginationController
from odata_explorer.api.models import (
    PageRequest,
    PageResponse,
    ResourceInfo,
    ResourceListResponse,
    EXAMPLE_RESOURCE,
)


class ODataGateway:
    """
    Configuration, shared session and per-resource pagers for the gateway.

    Reads configuration from environment variables by default.
    """

    def __init__(
        self,
        service_url: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        bearer_token: Optional[str] = None,
        verify_tls: Optional[bool] = None,
        api_key: Optional[str] = None,
        page_size: Optional[int] = None,
        count_strategy: Optional[str] = None,
        max_page_size: int = 500,
        meta_cache_ttl: Optional[int] = None,
        max_pagers: int = 128,
    ):
        # Load from env if not provided
        self.service_url = clean_service_url(service_url or os.environ.get("ODATA_SERVICE_URL"))
        self.user = user or os.environ.get("ODATA_USER", "")
        self.password = password or os.environ.get("ODATA_PASS", "")
        self.bearer_token = bearer_token or os.environ.get("ODATA_BEARER_TOKEN", "")

        if verify_tls is not None:
            self.verify_tls = verify_tls
        else:
            self.verify_tls = os.environ.get("ODATA_VERIFY_TLS", "true").lower() != "false"

        self.api_key = api_key or os.environ.get("ODATA_API_KEY", "")
        self.page_size = int(page_size or os.environ.get("ODATA_PAGE_SIZE", "25"))
        self.count_strategy = count_strategy or os.environ.get("ODATA_COUNT_STRATEGY", "inlinecount")
        self.max_page_size = max_page_size
        if meta_cache_ttl is None:
            meta_cache_ttl = int(os.environ.get("ODATA_META_TTL", "900"))
        self.meta_cache_ttl = meta_cache_ttl

        self._session: Optional[ODataSession] = None
        self.max_pagers = max_pagers
        self._pagers: "OrderedDict[str, PaginationController]" = OrderedDict()
        self._lock = threading.Lock()

        # Discovery cache
        self._resource_cache: Optional[Dict[str, Any]] = None

    def validate(self) -> None:
        """Validate configuration. Raises RuntimeError if invalid."""
        if not self.service_url:
            raise RuntimeError("Missing ODATA_SERVICE_URL environment variable")
        if not self.bearer_token and not (self.user and self.password):
            raise RuntimeError("Missing ODATA_USER/ODATA_PASS or ODATA_BEARER_TOKEN")
        if not self.api_key:
            raise RuntimeError("Missing ODATA_API_KEY - required for security")

    def build_session(self) -> ODataSession:
        """Create a new OData session."""
        if self.bearer_token:
            auth = ODataAuth("bearer", self.bearer_token)
        else:
            auth = ODataAuth("basic", (self.user, self.password))

        cfg = ODataConfig(
            service_url=self.service_url,
            auth=auth,
            verify=self.verify_tls,
            timeout=float(os.environ.get("ODATA_TIMEOUT", "60")),
            retries=int(os.environ.get("ODATA_RETRIES", "3")),
            backoff=float(os.environ.get("ODATA_BACKOFF", "0.5")),
            page_size=self.page_size,
            count_strategy=self.count_strategy,
        )
        return ODataSession(cfg)

    @property
    def session(self) -> ODataSession:
        """Long-lived session shared by discovery and every pager."""
        with self._lock:
            if self._session is None:
                self._session = self.build_session()
            return self._session

    def pager(self, resource: str) -> PaginationController:
        """
        Pagination controller owning the session state of one resource.

        At most ``max_pagers`` are kept; the least recently used one is
        dropped first.
        """
        sess = self.session
        with self._lock:
            pager = self._pagers.get(resource)
            if pager is None:
                pager = PaginationController(
                    sess,
                    page_size=self.page_size,
                    count_strategy=self.count_strategy,
                )
                self._pagers[resource] = pager
                while len(self._pagers) > self.max_pagers:
                    self._pagers.popitem(last=False)
            else:
                self._pagers.move_to_end(resource)
            return pager

    def resources(self) -> Tuple[List[ResourceDescriptor], bool]:
        """Discovered resources and whether they came from the cache."""
        now = time.time()
        cached = self._resource_cache
        if cached and (now - cached["ts"]) < self.meta_cache_ttl:
            return cached["resources"], True

        resources = ResourceDiscovery(self.session).discover()
        self._resource_cache = {"ts": now, "resources": resources}
        return resources, False

    def close(self) -> None:
        with self._lock:
            if self._session is not None:
                self._session.close()
                self._session = None
            self._pagers.clear()
            self._resource_cache = None


# Global gateway instance (lazy init)
_gateway: Optional[ODataGateway] = None


def get_gateway() -> ODataGateway:
    """Get or create the global gateway instance."""
    global _gateway
    if _gateway is None:
        _gateway = ODataGateway()
    return _gateway


def _resource_info(r: ResourceDescriptor) -> ResourceInfo:
    return ResourceInfo(name=r.name, kind=r.kind.value, url=r.url)


def create_app(
    gateway: Optional[ODataGateway] = None,
    validate_on_startup: bool = True,
) -> FastAPI:
    """
    Create the FastAPI application.

    Parameters
    ----------
    gateway : ODataGateway, optional
        Custom gateway configuration. If None, reads from environment.
    validate_on_startup : bool
        If True, validate configuration on startup.

    Returns
    -------
    FastAPI
        Configured FastAPI application
    """
    global _gateway

    if gateway:
        _gateway = gateway
    else:
        _gateway = ODataGateway()

    if validate_on_startup:
        try:
            _gateway.validate()
        except RuntimeError:
            # Allow app creation without validation for testing
            pass

    app = FastAPI(
        title="OData Explorer Gateway",
        description="""
## OData Explorer Gateway

Browse any OData v2 service without writing queries.

- `GET /resources` lists entity sets, entity types and function imports
- `POST /resources/{name}/page` loads one page with sorting and column filters

The gateway negotiates `$count` / `$inlinecount` support per resource and
keeps a stable `total_records` across pages.

### Authentication
Include your API key in the `x-api-key` header.
        """,
        version="0.1.0",
        openapi_tags=[
            {
                "name": "Discovery",
                "description": "Discover queryable resources",
            },
            {
                "name": "Browse",
                "description": "Lazy paging with sort and filter",
            },
        ],
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    def require_api_key(x_api_key: str = Header(...)) -> None:
        gw = get_gateway()
        if gw.api_key and x_api_key != gw.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    @app.get("/health")
    def health() -> Dict[str, Any]:
        """Health check endpoint."""
        return {"ok": True, "version": "0.1.0"}

    @app.get(
        "/resources",
        response_model=ResourceListResponse,
        tags=["Discovery"],
        summary="List Resources",
    )
    def list_resources(
        search: Optional[str] = Query(
            default=None,
            description="Case-insensitive match on name, kind or url",
            examples=["product"],
        ),
        _: None = Depends(require_api_key),
    ) -> ResourceListResponse:
        """Discover resources from the service document, falling back to $metadata."""
        gw = get_gateway()
        try:
            resources, cached = gw.resources()
        except DiscoveryError as e:
            raise HTTPException(
                status_code=502,
                detail={"message": str(e), "service_url": gw.service_url}
            )

        matches: List[ResourceDescriptor] = filter_resources(resources, search)
        return ResourceListResponse(
            service_url=gw.service_url,
            count=len(matches),
            cached=cached,
            resources=[_resource_info(r) for r in matches],
        )

    @app.post(
        "/resources/{resource}/page",
        response_model=PageResponse,
        tags=["Browse"],
        summary="Load Page",
        description="Load one page of a resource with optional sorting and column filters.",
    )
    def load_page(
        req: PageRequest,
        resource: str = PathParam(
            default=...,
            description="Resource name",
            examples=[EXAMPLE_RESOURCE],
        ),
        _: None = Depends(require_api_key),
    ) -> PageResponse:
        """Load one page; the total is reconciled across calls for the same resource."""
        gw = get_gateway()
        page_size = min(int(req.page_size or gw.page_size), gw.max_page_size)

        sort = sort_from_table(
            [s.model_dump() for s in req.multi_sort_meta or []],
            req.sort_field,
            req.sort_order,
        )
        filters = filters_from_table({
            field: (
                [i.model_dump(by_alias=True) for i in item]
                if isinstance(item, list)
                else item.model_dump(by_alias=True)
            )
            for field, item in (req.filters or {}).items()
        })

        try:
            page = gw.pager(resource).load_page(
                resource,
                skip=req.skip,
                page_size=page_size,
                sort=sort,
                filters=filters,
            )
        except DataFetchError as e:
            raise HTTPException(
                status_code=502,
                detail={"upstream_status": e.status, "message": e.message, "resource": resource}
            )

        return PageResponse(
            resource=page.resource,
            skip=page.skip,
            page_size=page.page_size,
            total_records=page.total_records,
            count_strategy=page.count_strategy.value,
            exhausted=page.exhausted,
            columns=page.columns,
            column_types={k: v.value for k, v in page.column_types.items()},
            rows=page.rows,
        )

    @app.post(
        "/resources/{resource}/reset",
        tags=["Browse"],
        summary="Reset Resource Session",
    )
    def reset_resource(
        resource: str = PathParam(default=..., examples=[EXAMPLE_RESOURCE]),
        _: None = Depends(require_api_key),
    ) -> Dict[str, Any]:
        """Forget offsets, totals, count strategy and column types for a resource."""
        get_gateway().pager(resource).reset(resource)
        return {"resource": resource, "reset": True}

    return app

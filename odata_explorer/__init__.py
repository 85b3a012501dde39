"""
OData Explorer (odata_explorer)
===============================

A Python package for browsing OData v2 services without hand-written
queries: resource discovery, sort/filter compilation, count negotiation
and lazy pagination.

Usage
-----
>>> from odata_explorer import ConnectionContext
>>> from odata_explorer.odata import FilterDescriptor, SortDescriptor
>>>
>>> with ConnectionContext() as conn:
...     resources = conn.discover_resources()
...     pager = conn.browse()
...     page = pager.load_page(
...         "Products",
...         skip=0,
...         page_size=25,
...         sort=[SortDescriptor("ProductName")],
...         filters=[FilterDescriptor("ProductName", "Chai", "startsWith")],
...     )
...     print(page.total_records, len(page.rows))

Subpackages
-----------
- odata_explorer.core: Session, authentication, and configuration
- odata_explorer.odata: Discovery, query compilation and pagination
- odata_explorer.api: Optional FastAPI REST gateway

"""

__version__ = "0.1.0"

# Core exports - available at package root
from odata_explorer.core.session import (
    ODataAuth,
    ODataConfig,
    ODataSession,
    ODataUpstreamError,
    DiscoveryError,
    DataFetchError,
)

from odata_explorer.core.connection import ConnectionContext

# Convenience re-exports
from odata_explorer.odata import (
    PaginationController,
    ResourceDescriptor,
    ResourceDiscovery,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "ODataAuth",
    "ODataConfig",
    "ODataSession",
    "ODataUpstreamError",
    "DiscoveryError",
    "DataFetchError",
    "ConnectionContext",
    # OData
    "PaginationController",
    "ResourceDescriptor",
    "ResourceDiscovery",
]

"""
odata_explorer.core - Core connectivity and authentication
==========================================================

This module provides the foundational classes for connecting to OData services:

- ODataAuth: Authentication configuration (basic or bearer token)
- ODataConfig: Full connection configuration
- ODataSession: Low-level HTTP session with retry and error extraction
- ConnectionContext: High-level connection manager

"""

from odata_explorer.core.session import (
    ODataAuth,
    ODataConfig,
    ODataSession,
    ODataUpstreamError,
    DiscoveryError,
    DataFetchError,
)

from odata_explorer.core.connection import ConnectionContext

__all__ = [
    "ODataAuth",
    "ODataConfig",
    "ODataSession",
    "ODataUpstreamError",
    "DiscoveryError",
    "DataFetchError",
    "ConnectionContext",
]

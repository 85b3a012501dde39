"""
odata_explorer.odata - Query & Pagination Engine
================================================

This module provides the browsing engine for OData v2 services:

- ResourceDiscovery / discover: service document and $metadata parsing
- infer_column_types / ColumnTypeMap: column type inference
- compile_order_by / compile_filter: $orderby and $filter compilation
- CountNegotiator: $count / $inlinecount negotiation
- PaginationController: lazy page loading with total reconciliation
- format_value: cell formatting for display

"""

from odata_explorer.odata.discovery import (
    ResourceDescriptor,
    ResourceDiscovery,
    ResourceKind,
    discover,
    filter_resources,
)
from odata_explorer.odata.types import ColumnType, ColumnTypeMap, infer_column_types
from odata_explorer.odata.filters import (
    FilterDescriptor,
    MatchMode,
    SortDescriptor,
    SortDirection,
    compile_filter,
    compile_order_by,
    escape_odata_literal,
    sanitize_field,
)
from odata_explorer.odata.counting import CountNegotiator, CountStrategy
from odata_explorer.odata.service import ODataService
from odata_explorer.odata.pagination import (
    LoadState,
    PageResult,
    PaginationController,
    PaginationState,
)
from odata_explorer.odata.formatting import format_value, parse_legacy_date

__all__ = [
    "ResourceDescriptor",
    "ResourceDiscovery",
    "ResourceKind",
    "discover",
    "filter_resources",
    "ColumnType",
    "ColumnTypeMap",
    "infer_column_types",
    "FilterDescriptor",
    "MatchMode",
    "SortDescriptor",
    "SortDirection",
    "compile_filter",
    "compile_order_by",
    "escape_odata_literal",
    "sanitize_field",
    "CountNegotiator",
    "CountStrategy",
    "ODataService",
    "LoadState",
    "PageResult",
    "PaginationController",
    "PaginationState",
    "format_value",
    "parse_legacy_date",
]

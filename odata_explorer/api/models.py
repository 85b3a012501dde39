"""
odata_explorer.api.models - Pydantic models for API requests/responses
======================================================================
"""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Example defaults (public Northwind v2 service)
# ---------------------------------------------------------------------------

EXAMPLE_RESOURCE = "Products"
EXAMPLE_SORT_FIELD = "ProductName"


class SortItem(BaseModel):
    """One column of a multi-column sort."""

    field: str = Field(
        description="Field to sort by",
        json_schema_extra={"example": EXAMPLE_SORT_FIELD}
    )
    order: Union[int, str] = Field(
        default=1,
        description="1 / 'asc' for ascending, -1 / 'desc' for descending",
        json_schema_extra={"example": -1}
    )


class FilterItem(BaseModel):
    """One column filter constraint."""

    model_config = ConfigDict(populate_by_name=True)

    value: Any = Field(
        default=None,
        description="Filter value; empty values are ignored",
        json_schema_extra={"example": "Chai"}
    )
    match_mode: Optional[str] = Field(
        default=None,
        alias="matchMode",
        description="startsWith, endsWith, contains, equals or notEquals",
        json_schema_extra={"example": "startsWith"}
    )


class PageRequest(BaseModel):
    """Request model for a lazy page load."""

    skip: int = Field(
        default=0,
        ge=0,
        description="Absolute offset ($skip)",
        json_schema_extra={"example": 0}
    )
    page_size: Optional[int] = Field(
        default=None,
        ge=1,
        description="Rows per page ($top); defaults to the configured page size",
        json_schema_extra={"example": 25}
    )
    multi_sort_meta: Optional[List[SortItem]] = Field(
        default=None,
        description="Multi-column sort; wins over sort_field",
    )
    sort_field: Optional[str] = Field(
        default=None,
        description="Single sort field",
        json_schema_extra={"example": EXAMPLE_SORT_FIELD}
    )
    sort_order: Union[int, str] = Field(
        default=1,
        description="Direction for sort_field",
    )
    filters: Optional[Dict[str, Union[FilterItem, List[FilterItem]]]] = Field(
        default=None,
        description="Column filters keyed by field, combined with 'and'",
        json_schema_extra={"example": {"ProductName": {"value": "Ch", "matchMode": "startsWith"}}}
    )


class PageResponse(BaseModel):
    """Response model for a lazy page load."""

    resource: str
    skip: int
    page_size: int
    total_records: int
    count_strategy: str
    exhausted: bool
    columns: List[str]
    column_types: Dict[str, str]
    rows: List[Any]


class ResourceInfo(BaseModel):
    """A discovered resource."""

    name: str
    kind: str
    url: str


class ResourceListResponse(BaseModel):
    """Response model for resource discovery."""

    service_url: str
    count: int
    cached: bool = False
    resources: List[ResourceInfo]

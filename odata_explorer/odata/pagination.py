"""
odata_explorer.odata.pagination - Lazy page loading
===================================================

Orchestrates one page fetch at a time for the active resource:
compiles sort and filter intent, negotiates the counting parameter,
and reconciles a stable total row count across pages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence
import logging
import threading

import requests

from odata_explorer.core.session import DataFetchError, ODataSession, ODataUpstreamError
from odata_explorer.odata.counting import CountNegotiator, CountStrategy
from odata_explorer.odata.filters import (
    FilterDescriptor,
    SortDescriptor,
    compile_filter,
    compile_order_by,
    describe,
)
from odata_explorer.odata.service import ODataService, PageResponse
from odata_explorer.odata.types import ColumnType, ColumnTypeMap, extract_columns

logger = logging.getLogger("odata_explorer.pagination")

DEFAULT_PAGE_SIZE = 25


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    RETRYING = "retrying"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass
class PaginationState:
    skip: int = 0
    page_size: int = DEFAULT_PAGE_SIZE
    total_records: int = 0
    initialized: bool = False


@dataclass
class ResourceSession:
    """
    Everything that lives as long as one resource stays active.

    Attributes
    ----------
    resource : str or None
        Active resource name
    pagination : PaginationState
        Offsets and running total
    negotiator : CountNegotiator
        Counting convention believed to work for this resource
    column_types : ColumnTypeMap
        Types inferred from rows loaded so far
    rows : list
        Rows of the last successfully loaded page
    """
    default_page_size: int = DEFAULT_PAGE_SIZE
    initial_strategy: CountStrategy = CountStrategy.INLINECOUNT
    resource: Optional[str] = None
    pagination: PaginationState = field(default_factory=PaginationState)
    negotiator: CountNegotiator = field(init=False)
    column_types: ColumnTypeMap = field(default_factory=ColumnTypeMap)
    rows: List[Any] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.negotiator = CountNegotiator(self.initial_strategy)
        self.pagination.page_size = self.default_page_size

    def reset(self, resource: Optional[str] = None) -> None:
        self.resource = resource
        self.pagination = PaginationState(page_size=self.default_page_size)
        self.negotiator.reset()
        self.column_types.clear()
        self.rows = []


@dataclass
class PageResult:
    """One loaded page, as handed to a table view."""
    resource: str
    rows: List[Any]
    columns: List[str]
    skip: int
    page_size: int
    total_records: int
    count_strategy: CountStrategy
    column_types: Dict[str, ColumnType]
    count_observed: bool = False

    @property
    def exhausted(self) -> bool:
        """A short page means there is nothing beyond it."""
        return len(self.rows) < self.page_size


class PaginationController:
    """
    Loads pages of one resource at a time.

    Switching to another resource resets offsets, the running total,
    the count strategy and the inferred column types.

    Parameters
    ----------
    sess : ODataSession
        Active OData session
    page_size : int
        Default page size
    count_strategy : CountStrategy or str
        Initial counting convention (default: inlinecount)

    Examples
    --------
    >>> with ODataSession(cfg) as sess:
    ...     pager = PaginationController(sess)
    ...     page = pager.load_page("Products", skip=0, page_size=25,
    ...                            sort=[SortDescriptor("Name")])
    ...     while not page.exhausted:
    ...         page = pager.load_page("Products", page.skip + page.page_size, 25)
    """

    def __init__(
        self,
        sess: ODataSession,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        count_strategy: Any = CountStrategy.INLINECOUNT,
    ) -> None:
        self.service = ODataService(sess)
        self.resource_session = ResourceSession(
            default_page_size=int(page_size),
            initial_strategy=CountStrategy.parse(count_strategy),
        )
        self.status = LoadState.IDLE
        self.last_error: Optional[DataFetchError] = None
        self._lock = threading.Lock()

    # ---------------- state ----------------

    @property
    def state(self) -> PaginationState:
        return self.resource_session.pagination

    @property
    def count_strategy(self) -> CountStrategy:
        return self.resource_session.negotiator.strategy

    @property
    def column_types(self) -> ColumnTypeMap:
        return self.resource_session.column_types

    def reset(self, resource: Optional[str] = None) -> None:
        """Start a fresh session, optionally for a new resource."""
        with self._lock:
            self.resource_session.reset(resource)
            self.status = LoadState.IDLE
            self.last_error = None

    # ---------------- loading ----------------

    def load_page(
        self,
        resource: str,
        skip: int = 0,
        page_size: Optional[int] = None,
        sort: Optional[Sequence[SortDescriptor]] = None,
        filters: Optional[Iterable[FilterDescriptor]] = None,
        is_retry: bool = False,
    ) -> PageResult:
        """
        Load one page and reconcile the running total.

        Parameters
        ----------
        resource : str
            Resource name; a different name than the active one resets
            the session first
        skip : int
            Absolute offset of the page
        page_size : int, optional
            Rows per page, defaults to the session default
        sort : sequence of SortDescriptor, optional
            Sort order, first entry most significant
        filters : iterable of FilterDescriptor, optional
            Active column filters, combined with "and"
        is_retry : bool
            Whether this call is itself a negotiated retry

        Returns
        -------
        PageResult
            The loaded page

        Raises
        ------
        DataFetchError
            When the fetch fails for any reason other than a counting
            rejection that could be negotiated away
        """
        if resource != self.resource_session.resource:
            self.reset(resource)

        skip = max(int(skip or 0), 0)
        page_size = int(page_size or self.resource_session.default_page_size)
        filters = list(filters or ())

        with self._lock:
            want_count = not self.state.initialized or skip == 0
            orderby = compile_order_by(sort)
            filter_expr = compile_filter(filters, self.resource_session.column_types)
            count_param = self.resource_session.negotiator.query_parameter() if want_count else None
            self.status = LoadState.RETRYING if is_retry else LoadState.LOADING

        if filters:
            logger.debug("filters for %s: %s", resource, describe(filters))

        try:
            response = self.service.read_page(
                resource,
                top=page_size,
                skip=skip,
                orderby=orderby,
                filter_expr=filter_expr,
                count_param=count_param,
            )
        except ODataUpstreamError as e:
            if count_param and self._downgrade(e.message):
                logger.info("retrying %s skip=%d with count strategy %s",
                            resource, skip, self.count_strategy.value)
                return self.load_page(resource, skip, page_size, sort, filters, is_retry=True)
            raise self._fail(resource, e.message, e.status) from e
        except requests.RequestException as e:
            raise self._fail(resource, str(e) or "Transport error", None) from e

        return self._apply(resource, skip, page_size, response)

    def _downgrade(self, message: str) -> bool:
        with self._lock:
            return self.resource_session.negotiator.on_server_error(message)

    def _fail(self, resource: str, message: str, status: Optional[int]) -> DataFetchError:
        err = DataFetchError(resource, message, status)
        with self._lock:
            self.status = LoadState.FAILED
            self.last_error = err
        logger.warning("page load failed for %s: %s", resource, message)
        return err

    def _apply(self, resource: str, skip: int, page_size: int, response: PageResponse) -> PageResult:
        rows = response.rows
        with self._lock:
            st = self.state
            if response.total is not None:
                st.total_records = response.total
            elif not st.initialized:
                st.total_records = len(rows)
            elif self.count_strategy == CountStrategy.NONE:
                st.total_records = max(st.total_records, skip + len(rows))

            st.skip = skip
            st.page_size = page_size
            st.initialized = True

            self.resource_session.rows = rows
            self.resource_session.column_types.observe(rows)
            self.status = LoadState.LOADED
            self.last_error = None

            return PageResult(
                resource=resource,
                rows=rows,
                columns=extract_columns(rows),
                skip=skip,
                page_size=page_size,
                total_records=st.total_records,
                count_strategy=self.count_strategy,
                column_types=dict(self.resource_session.column_types),
                count_observed=response.total is not None,
            )

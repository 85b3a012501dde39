"""
Tests for odata_explorer.odata.pagination.
"""

import pytest
from unittest.mock import Mock

import requests

from odata_explorer.core.session import DataFetchError, ODataUpstreamError
from odata_explorer.odata.counting import CountStrategy
from odata_explorer.odata.filters import FilterDescriptor, SortDescriptor
from odata_explorer.odata.pagination import LoadState, PaginationController
from odata_explorer.odata.types import ColumnType

COUNT_REJECTED = "The query parameter '$count' is not a valid query option."
INLINECOUNT_REJECTED = "The query parameter '$inlinecount' is not a valid query option."


def _rejection(message, status=400):
    return ODataUpstreamError(status, '{"error": ...}', "https://test.example.com", message=message)


def _fetched_urls(session):
    return [c.args[0] for c in session.fetch.call_args_list]


class TestLoadPage:
    """Tests for a single page load."""

    def test_first_load_uses_inline_count(self, mock_session, make_rows):
        mock_session.fetch = Mock(return_value={"d": {"__count": "100", "results": make_rows(25)}})
        pager = PaginationController(mock_session)

        page = pager.load_page("Products")

        url = _fetched_urls(mock_session)[0]
        assert url.startswith("https://test.example.com/odata/Test.svc/Products?$format=json&$top=25")
        assert url.endswith("&$inlinecount=allpages")
        assert "$skip" not in url
        assert page.total_records == 100
        assert page.count_observed is True
        assert page.columns == ["ID", "Name"]
        assert pager.status is LoadState.LOADED

    def test_count_strategy_sends_count_true(self, mock_session, make_rows):
        mock_session.fetch = Mock(return_value={"value": make_rows(5), "@odata.count": 5})
        pager = PaginationController(mock_session, count_strategy="count")

        pager.load_page("Products", page_size=10)

        assert _fetched_urls(mock_session)[0].endswith("$top=10&$count=true")

    def test_sort_and_filters_reach_the_query(self, mock_session, make_rows):
        mock_session.fetch = Mock(return_value={"value": make_rows(3)})
        pager = PaginationController(mock_session)

        pager.load_page(
            "Products",
            sort=[SortDescriptor("Name", "desc")],
            filters=[FilterDescriptor("Name", "Row", "startsWith")],
        )

        url = _fetched_urls(mock_session)[0]
        assert "$orderby=Name%20desc" in url
        assert "$filter=startswith(Name%2C'Row')" in url

    def test_filters_use_inferred_column_types(self, mock_session, make_rows):
        mock_session.fetch = Mock(return_value={"value": make_rows(3)})
        pager = PaginationController(mock_session)
        pager.load_page("Products")
        assert pager.column_types["ID"] is ColumnType.NUMBER

        pager.load_page("Products", filters=[FilterDescriptor("ID", "1", "contains")])

        assert "$filter=ID%20eq%201" in _fetched_urls(mock_session)[1]

    def test_short_page_is_exhausted(self, mock_session, make_rows):
        mock_session.fetch = Mock(return_value={"value": make_rows(10)})
        page = PaginationController(mock_session).load_page("Products", page_size=25)
        assert page.exhausted is True


class TestTotalReconciliation:
    """Tests for the running total across pages."""

    def test_returned_count_is_authoritative(self, mock_session, make_rows):
        mock_session.fetch = Mock(side_effect=[
            {"d": {"__count": "100", "results": make_rows(25)}},
            {"d": {"__count": "90", "results": make_rows(25, 25)}},
        ])
        pager = PaginationController(mock_session)

        pager.load_page("Products")
        page = pager.load_page("Products", skip=0)

        assert page.total_records == 90

    def test_total_grows_without_counting(self, mock_session, make_rows):
        mock_session.fetch = Mock(side_effect=[
            {"value": make_rows(25)},
            {"value": make_rows(10, 25)},
            {"value": make_rows(25)},
            {"value": make_rows(5, 25)},
        ])
        pager = PaginationController(mock_session, count_strategy="none")

        assert pager.load_page("Products", skip=0).total_records == 25
        assert pager.load_page("Products", skip=25).total_records == 35
        assert pager.load_page("Products", skip=0).total_records == 35
        # page 2 shrank to 5 rows on reload; the estimate never goes down
        assert pager.load_page("Products", skip=25).total_records == 35

        assert all("count" not in url for url in _fetched_urls(mock_session))

    def test_total_kept_when_count_missing_later(self, mock_session, make_rows):
        mock_session.fetch = Mock(side_effect=[
            {"d": {"__count": "60", "results": make_rows(25)}},
            {"d": {"results": make_rows(25, 25)}},
        ])
        pager = PaginationController(mock_session)

        pager.load_page("Products")
        page = pager.load_page("Products", skip=25)

        assert page.total_records == 60
        assert page.count_observed is False

    def test_count_only_requested_on_first_load_or_first_page(self, mock_session, make_rows):
        mock_session.fetch = Mock(return_value={"d": {"__count": "60", "results": make_rows(25)}})
        pager = PaginationController(mock_session)

        pager.load_page("Products", skip=25)
        pager.load_page("Products", skip=50)
        pager.load_page("Products", skip=0)

        with_count = ["$inlinecount=allpages" in url for url in _fetched_urls(mock_session)]
        assert with_count == [True, False, True]

    def test_state_tracks_last_page(self, mock_session, make_rows):
        mock_session.fetch = Mock(return_value={"value": make_rows(10)})
        pager = PaginationController(mock_session)

        pager.load_page("Products", skip=20, page_size=10)

        assert pager.state.skip == 20
        assert pager.state.page_size == 10
        assert pager.state.initialized is True


class TestCountNegotiation:
    """Tests for count strategy downgrades during paging."""

    def test_downgrade_sequence(self, mock_session, make_rows):
        mock_session.fetch = Mock(side_effect=[
            _rejection(COUNT_REJECTED),
            _rejection(INLINECOUNT_REJECTED),
            {"value": make_rows(7)},
        ])
        pager = PaginationController(mock_session, count_strategy="count")

        page = pager.load_page("Products")

        urls = _fetched_urls(mock_session)
        assert len(urls) == 3
        assert urls[0].endswith("$count=true")
        assert urls[1].endswith("$inlinecount=allpages")
        assert "count" not in urls[2]
        assert page.count_strategy is CountStrategy.NONE
        assert page.total_records == 7
        assert pager.status is LoadState.LOADED

    def test_strategy_is_remembered(self, mock_session, make_rows):
        mock_session.fetch = Mock(side_effect=[
            _rejection(INLINECOUNT_REJECTED),
            {"value": make_rows(25)},
            {"value": make_rows(25)},
        ])
        pager = PaginationController(mock_session)

        pager.load_page("Products")
        pager.load_page("Products", skip=0)

        urls = _fetched_urls(mock_session)
        assert len(urls) == 3
        assert "count" not in urls[2]

    def test_rejection_after_none_propagates(self, mock_session):
        mock_session.fetch = Mock(side_effect=_rejection(INLINECOUNT_REJECTED))
        pager = PaginationController(mock_session, count_strategy="none")

        with pytest.raises(DataFetchError):
            pager.load_page("Products")
        assert mock_session.fetch.call_count == 1

    def test_rejection_without_count_parameter_propagates(self, mock_session, make_rows):
        mock_session.fetch = Mock(side_effect=[
            {"d": {"__count": "60", "results": make_rows(25)}},
            _rejection(INLINECOUNT_REJECTED),
        ])
        pager = PaginationController(mock_session)
        pager.load_page("Products")

        with pytest.raises(DataFetchError):
            pager.load_page("Products", skip=25)
        assert pager.count_strategy is CountStrategy.INLINECOUNT


class TestFailures:
    """Tests for failed loads."""

    def test_upstream_error_becomes_data_fetch_error(self, mock_session):
        mock_session.fetch = Mock(side_effect=_rejection("Resource not found for segment 'Nope'", 404))
        pager = PaginationController(mock_session)

        with pytest.raises(DataFetchError) as exc:
            pager.load_page("Nope")

        assert exc.value.status == 404
        assert exc.value.resource == "Nope"
        assert "Resource not found" in exc.value.message
        assert pager.status is LoadState.FAILED
        assert pager.last_error is exc.value

    def test_failure_keeps_previous_state(self, mock_session, make_rows):
        mock_session.fetch = Mock(side_effect=[
            {"d": {"__count": "60", "results": make_rows(25)}},
            _rejection("Internal error", 500),
        ])
        pager = PaginationController(mock_session)
        pager.load_page("Products")

        with pytest.raises(DataFetchError):
            pager.load_page("Products", skip=25)

        assert pager.state.skip == 0
        assert pager.state.total_records == 60
        assert len(pager.resource_session.rows) == 25

    def test_non_json_body_keeps_previous_rows(self, mock_session, make_rows):
        mock_session.fetch = Mock(side_effect=[
            {"d": {"__count": "60", "results": make_rows(25)}},
            {"raw": "<html>Service maintenance</html>", "content_type": "text/html"},
        ])
        pager = PaginationController(mock_session)
        pager.load_page("Products")

        with pytest.raises(DataFetchError) as exc:
            pager.load_page("Products", skip=25)

        assert exc.value.status == 200
        assert "text/html" in exc.value.message
        assert pager.status is LoadState.FAILED
        assert pager.state.total_records == 60
        assert pager.resource_session.rows == make_rows(25)
        assert "raw" not in pager.column_types

    def test_infinite_count_is_ignored(self, mock_session, make_rows):
        mock_session.fetch = Mock(return_value={"value": make_rows(3), "count": "Infinity"})
        pager = PaginationController(mock_session)

        page = pager.load_page("Products")

        assert page.total_records == 3
        assert page.count_observed is False
        assert pager.status is LoadState.LOADED

    def test_transport_error(self, mock_session):
        mock_session.fetch = Mock(side_effect=requests.ConnectionError("connection refused"))
        pager = PaginationController(mock_session)

        with pytest.raises(DataFetchError) as exc:
            pager.load_page("Products")

        assert exc.value.status is None
        assert "connection refused" in exc.value.message

    def test_success_clears_last_error(self, mock_session, make_rows):
        mock_session.fetch = Mock(side_effect=[_rejection("boom", 500), {"value": make_rows(1)}])
        pager = PaginationController(mock_session)

        with pytest.raises(DataFetchError):
            pager.load_page("Products")
        pager.load_page("Products")

        assert pager.last_error is None
        assert pager.status is LoadState.LOADED


class TestResourceSwitch:
    """Tests for resetting state on resource change."""

    def test_switch_resets_session(self, mock_session, make_rows):
        mock_session.fetch = Mock(side_effect=[
            _rejection(INLINECOUNT_REJECTED),
            {"value": [{"Price": 10}]},
            {"d": {"__count": "3", "results": [{"Price": "cheap"}]}},
        ])
        pager = PaginationController(mock_session)

        pager.load_page("Products")
        assert pager.count_strategy is CountStrategy.NONE
        assert pager.column_types["Price"] is ColumnType.NUMBER

        page = pager.load_page("Orders")

        assert _fetched_urls(mock_session)[2].endswith("$inlinecount=allpages")
        assert page.total_records == 3
        assert pager.count_strategy is CountStrategy.INLINECOUNT
        assert pager.column_types["Price"] is ColumnType.STRING
        assert pager.resource_session.resource == "Orders"

    def test_explicit_reset(self, mock_session, make_rows):
        mock_session.fetch = Mock(return_value={"value": make_rows(5)})
        pager = PaginationController(mock_session, page_size=10)
        pager.load_page("Products")

        pager.reset()

        assert pager.state.initialized is False
        assert pager.state.total_records == 0
        assert pager.state.page_size == 10
        assert len(pager.column_types) == 0
        assert pager.status is LoadState.IDLE

"""
Example: Basic usage of odata_explorer
======================================

This example browses the public Northwind OData v2 service.
"""

import logging

from odata_explorer import ConnectionContext, ODataAuth, ODataConfig, ODataSession
from odata_explorer.odata import (
    FilterDescriptor,
    PaginationController,
    ResourceDiscovery,
    SortDescriptor,
    format_value,
)

NORTHWIND = "https://services.odata.org/V2/Northwind/Northwind.svc/"


def example_discovery():
    """List what a service exposes."""

    cfg = ODataConfig(
        service_url=NORTHWIND,
        auth=ODataAuth("bearer", "anonymous"),
    )

    with ODataSession(cfg) as sess:
        for resource in ResourceDiscovery(sess).discover():
            print(f"{resource.kind.value:15} {resource.name}")


def example_paging():
    """Page through a resource with a sort and a column filter."""

    cfg = ODataConfig(
        service_url=NORTHWIND,
        auth=ODataAuth("bearer", "anonymous"),
    )

    with ODataSession(cfg) as sess:
        pager = PaginationController(sess, page_size=10, count_strategy="count")

        sort = [SortDescriptor("ProductName", "asc")]
        filters = [FilterDescriptor("ProductName", "Ch", "startsWith")]

        page = pager.load_page("Products", skip=0, sort=sort, filters=filters)
        print(f"{page.total_records} rows, counting via {page.count_strategy.value}")

        while True:
            for row in page.rows:
                print(" | ".join(format_value(row.get(c)) for c in page.columns[:4]))
            if page.exhausted:
                break
            page = pager.load_page("Products", page.skip + page.page_size, sort=sort, filters=filters)


def example_connection_context():
    """Using ConnectionContext with environment configuration."""

    # Reads ODATA_SERVICE_URL, ODATA_USER/ODATA_PASS or ODATA_BEARER_TOKEN
    with ConnectionContext() as conn:
        resources = conn.discover_resources()
        print(f"Found {len(resources)} resources")

        if resources:
            page = conn.browse().load_page(resources[0].name)
            print(f"First page of {page.resource}: {len(page.rows)} of {page.total_records}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    # Uncomment the example you want to run
    # example_discovery()
    # example_paging()
    # example_connection_context()
    pass

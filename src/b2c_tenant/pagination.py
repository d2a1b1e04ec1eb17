"""Aggregation of paged list responses.

List endpoints return ``{"value": [...], "@odata.nextLink": "..."}``; the link
is requested as-is until a page comes back without one.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Type, TypeVar

from .exceptions import PaginationError
from .graph_client import ApiSurface, GraphClient, Params
from .models import Page, parse_body

logger = logging.getLogger(__name__)

T = TypeVar("T")


def collect_all(
    client: GraphClient,
    endpoint: str,
    surface: ApiSurface,
    item_type: Type[T],
    item_filter: Optional[Callable[[T], bool]] = None,
    params: Params = None,
    max_pages: Optional[int] = None,
) -> List[T]:
    """Fetch every page of ``endpoint`` and return the items in page order.

    One request is issued per page. ``item_filter`` is applied page by page so
    only matching items are kept. ``max_pages`` bounds the number of requests;
    exceeding it raises ``PaginationError`` instead of looping on a service
    that never stops returning links.
    """
    page_type = Page[item_type]
    follow = surface.follow_link()
    collected: List[T] = []

    body = client.call(endpoint, surface, params=params)
    pages = 1
    while True:
        # fresh envelope per page so a missing link cannot be inherited
        page = parse_body(page_type, body)
        if item_filter is None:
            collected.extend(page.items)
        else:
            collected.extend(item for item in page.items if item_filter(item))

        if not page.next_link:
            break
        if max_pages is not None and pages >= max_pages:
            raise PaginationError(
                f"{endpoint} still returned a continuation link after {pages} pages"
            )

        logger.debug("Following continuation link for %s (page %d)", endpoint, pages + 1)
        body = client.call(page.next_link, follow)
        pages += 1

    return collected


def first_page(
    client: GraphClient,
    endpoint: str,
    surface: ApiSurface,
    item_type: Type[T],
    params: Params = None,
) -> List[T]:
    """Items of the first page only; any continuation link is ignored."""
    return client.fetch(Page[item_type], endpoint, surface, params=params).items

"""Offset/limit pagination shared by the list endpoints."""

from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 100


async def fetch_all_pages(
    fetch_page: Callable[[int, int], Awaitable[list[T]]],
    page_size: int = DEFAULT_PAGE_SIZE,
) -> list[T]:
    """Call ``fetch_page(offset, limit)`` until a page comes back short.

    Items are returned in server order without de-duplication. An error from
    any page propagates and the pages already fetched are discarded.
    """
    items: list[T] = []
    offset = 0
    while True:
        batch = await fetch_page(offset, page_size)
        items.extend(batch)
        if len(batch) < page_size:
            break
        offset += page_size
    return items

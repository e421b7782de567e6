"""
Paged collection fetching.

Drains cursor-based (Dialpad) and next-link-based (Microsoft Graph)
collections into one list. Hard item and page caps, plus a check for
repeated continuation tokens, guarantee termination against a source that
never stops handing out continuation tokens.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ITEMS = 2000
DEFAULT_MAX_PAGES = 200

GetJson = Callable[..., Awaitable[Any]]


@dataclass(slots=True)
class Page:
    items: list[Any]
    next_token: str | None


class PagedCollectionFetcher:
    """
    Fetches every page of a remote collection.

    Page errors propagate: a half-drained collection cannot be told apart
    from a complete one, so partial results are never returned on error.
    """

    def __init__(
        self,
        get_json: GetJson,
        max_items: int = DEFAULT_MAX_ITEMS,
        max_pages: int = DEFAULT_MAX_PAGES,
    ):
        if max_items <= 0 or max_pages <= 0:
            raise ValueError("max_items and max_pages must be positive")
        self._get_json = get_json
        self.max_items = max_items
        self.max_pages = max_pages

    async def fetch_cursor_paged(
        self,
        url: str,
        params: dict | None = None,
        *,
        items_key: str = "items",
        cursor_key: str = "cursor",
        cursor_param: str = "cursor",
        operation: str = "list",
    ) -> list[Any]:
        """Page by echoing the server's opaque cursor on each request."""
        base_params = dict(params or {})

        async def fetch_page(cursor: str | None) -> Page:
            page_params = dict(base_params)
            if cursor:
                page_params[cursor_param] = cursor
            data = await self._get_json(url, params=page_params, operation=operation)
            return Page(items=_items(data, items_key), next_token=(data or {}).get(cursor_key) or None)

        return await self._drain(fetch_page, operation)

    async def fetch_link_paged(
        self,
        url: str,
        params: dict | None = None,
        *,
        items_key: str = "value",
        next_link_key: str = "@odata.nextLink",
        headers: dict | None = None,
        operation: str = "list",
    ) -> list[Any]:
        """Page by following the complete next-URL returned by the server."""

        async def fetch_page(next_link: str | None) -> Page:
            if next_link:
                # next links already embed the original query
                data = await self._get_json(next_link, operation=operation, headers=headers)
            else:
                data = await self._get_json(url, params=params, operation=operation, headers=headers)
            return Page(items=_items(data, items_key), next_token=(data or {}).get(next_link_key) or None)

        return await self._drain(fetch_page, operation)

    async def _drain(self, fetch_page: Callable[[str | None], Awaitable[Page]], operation: str) -> list[Any]:
        collected: list[Any] = []
        token: str | None = None
        seen_tokens: set[str] = set()
        pages = 0

        while True:
            page = await fetch_page(token)
            pages += 1
            collected.extend(page.items)

            if len(collected) >= self.max_items:
                if page.next_token or len(collected) > self.max_items:
                    logger.warning(
                        "Paged collection truncated at item cap",
                        operation=operation,
                        max_items=self.max_items,
                        pages=pages,
                    )
                return collected[: self.max_items]

            token = page.next_token
            if not token:
                break

            if token in seen_tokens:
                logger.warning(
                    "Paged collection truncated at repeated continuation token",
                    operation=operation,
                    items=len(collected),
                    pages=pages,
                )
                return collected
            if pages >= self.max_pages:
                logger.warning(
                    "Paged collection truncated at page cap",
                    operation=operation,
                    max_pages=self.max_pages,
                    items=len(collected),
                )
                return collected
            seen_tokens.add(token)

        logger.debug("Paged collection drained", operation=operation, items=len(collected), pages=pages)
        return collected


def _items(data: Any, items_key: str) -> list[Any]:
    if not isinstance(data, dict):
        return []
    items = data.get(items_key)
    return list(items) if isinstance(items, list) else []

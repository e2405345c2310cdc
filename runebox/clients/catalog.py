"""
Remote catalog client.

Read-only access to the hosted card catalog, a PostgREST-style table API:

    GET {base_url}/rest/v1/{table}?select=*&updated_at=gt.<iso>&order=...&limit=...

The client is constructed explicitly from CatalogClientOptions and passed to
the sync engine; it never reads process environment. Failures are raised as
RemoteFetchError and are not retried here.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from types import TracebackType
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, Field

from runebox.models.card import Card, CardSet
from runebox.models.failure import RemoteFetchError
from runebox.parsers.catalog import card_from_row, format_timestamp, set_from_row

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"

T = TypeVar("T")


def _row_id(row: Any) -> Any:
    return row.get("id") if isinstance(row, dict) else None


class CatalogClientOptions(BaseModel):
    """Connection settings for the hosted catalog."""

    base_url: str = Field(..., description="Catalog service root URL")
    api_key: str = Field(default="", description="Read-only service key")
    cards_table: str = "cards"
    sets_table: str = "sets"
    page_size: int = Field(default=1000, ge=1, description="Rows requested per page")
    timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")


class CatalogClient:
    """
    Fetches card and set rows from the hosted catalog.

    Usage:
        async with CatalogClient(options) as client:
            cards = await client.fetch_since(watermark)
    """

    def __init__(
        self,
        options: CatalogClientOptions,
        *,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.options = options
        self._http_client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http_client is None:
            headers = {"Accept": "application/json", "User-Agent": "RuneBox/1.0"}
            if self.options.api_key:
                headers["apikey"] = self.options.api_key
                headers["Authorization"] = f"Bearer {self.options.api_key}"
            self._http_client = httpx.AsyncClient(
                base_url=self.options.base_url,
                headers=headers,
                timeout=self.options.timeout,
            )
        return self._http_client

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    # --- Cards ---

    async def fetch_all(self) -> list[Card]:
        """Fetch every card in the catalog."""
        rows = await self._fetch_rows(self.options.cards_table, "updated_at")
        return self._parse(rows, card_from_row)

    async def fetch_since(self, timestamp: datetime) -> list[Card]:
        """Fetch cards with updated_at strictly greater than timestamp."""
        rows = await self._fetch_rows(self.options.cards_table, "updated_at", since=timestamp)
        return self._parse(rows, card_from_row)

    # --- Sets ---

    async def fetch_all_sets(self) -> list[CardSet]:
        """Fetch every set in the catalog."""
        rows = await self._fetch_rows(self.options.sets_table, "created_at")
        return self._parse(rows, set_from_row)

    async def fetch_sets_since(self, timestamp: datetime) -> list[CardSet]:
        """Fetch sets created strictly after timestamp."""
        rows = await self._fetch_rows(self.options.sets_table, "created_at", since=timestamp)
        return self._parse(rows, set_from_row)

    # --- Internals ---

    async def _fetch_rows(
        self,
        table: str,
        order_column: str,
        since: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """
        Page through a table until a short page is returned.

        Pages are ordered by (order_column, id) so offsets stay stable while
        the catalog is being read.

        Raises:
            RemoteFetchError: On transport errors, non-2xx responses, a
                payload that is not a JSON array, or a page that ends on the
                same id as the one before it
        """
        page_size = self.options.page_size
        rows: list[dict[str, Any]] = []
        offset = 0
        previous_last_id: Any = None

        while True:
            params = {
                "select": "*",
                "order": f"{order_column}.asc,id.asc",
                "limit": str(page_size),
                "offset": str(offset),
            }
            if since is not None:
                params[order_column] = f"gt.{format_timestamp(since)}"

            try:
                response = await self.http.get(f"{REST_PREFIX}/{table}", params=params)
                response.raise_for_status()
                page = response.json()
            except httpx.HTTPStatusError as e:
                raise RemoteFetchError(
                    f"Catalog returned {e.response.status_code} for {table}",
                    e.response.text[:200],
                ) from e
            except httpx.HTTPError as e:
                raise RemoteFetchError(f"Could not reach catalog for {table}", str(e)) from e
            except ValueError as e:
                raise RemoteFetchError(f"Catalog sent invalid JSON for {table}", str(e)) from e

            if not isinstance(page, list):
                raise RemoteFetchError(
                    f"Catalog sent an unexpected payload for {table}",
                    type(page).__name__,
                )

            # A server that ignores offset would otherwise be paged forever.
            last_id = _row_id(page[-1]) if page else None
            if last_id is not None and last_id == previous_last_id:
                raise RemoteFetchError(
                    f"Catalog repeated a page for {table}",
                    f"offset {offset} returned the same rows as the previous page",
                )
            previous_last_id = last_id

            rows.extend(page)
            if len(page) < page_size:
                break
            offset += len(page)

        logger.debug("Fetched %d rows from %s (since=%s)", len(rows), table, since)
        return rows

    @staticmethod
    def _parse(rows: list[dict[str, Any]], parse_row: Callable[[dict[str, Any]], T]) -> list[T]:
        """Parse every row or fail the whole fetch."""
        try:
            return [parse_row(row) for row in rows]
        except (ValueError, TypeError) as e:
            raise RemoteFetchError("Catalog sent a malformed row", str(e)) from e

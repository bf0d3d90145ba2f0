"""Async data-source contract and its Supabase implementation.

The Supabase Python client is synchronous, so each query runs in a worker
thread. Any failure surfaces as DataSourceError with a readable message.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from storefront.core.perf import PerformanceMonitor

logger = logging.getLogger(__name__)


class DataSourceError(Exception):
    """A query against the remote table store failed."""


@dataclass(frozen=True)
class Ordering:
    column: str
    descending: bool = False


class DataSource(Protocol):
    async def fetch(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
        order: Ordering | None = None,
        offset: int | None = None,
        limit: int | None = None,
    ) -> list[dict]: ...

    async def fetch_one(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
    ) -> dict | None: ...

    async def update(self, table: str, values: dict, filters: dict[str, Any]) -> list[dict]: ...

    async def insert(self, table: str, rows: list[dict]) -> list[dict]: ...

    async def delete(self, table: str, filters: dict[str, Any]) -> list[dict]: ...


def _error_message(e: Exception) -> str:
    # postgrest.APIError carries message/code attributes
    message = getattr(e, "message", None) or str(e) or type(e).__name__
    code = getattr(e, "code", None)
    return f"{message} (Code: {code})" if code else message


class SupabaseDataSource:
    def __init__(self, client, monitor: PerformanceMonitor | None = None) -> None:
        self._client = client
        self._monitor = monitor or PerformanceMonitor(enabled=False)

    def _build_select(self, table, columns, filters, order, offset, limit):
        query = self._client.table(table).select(columns)
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        if order is not None:
            query = query.order(order.column, desc=order.descending)
        if limit is not None:
            if offset is not None:
                query = query.range(offset, offset + limit - 1)
            else:
                query = query.limit(limit)
        return query

    async def _execute(self, query_name: str, query) -> list[dict]:
        try:
            with self._monitor.measure(query_name) as m:
                response = await asyncio.to_thread(query.execute)
                rows = response.data or []
                m.data_size = len(rows)
        except Exception as e:
            logger.error(f"Supabase query {query_name} failed: {e}")
            raise DataSourceError(_error_message(e)) from e
        return rows

    async def fetch(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
        order: Ordering | None = None,
        offset: int | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        query = self._build_select(table, columns, filters, order, offset, limit)
        return await self._execute(f"{table}_select", query)

    async def fetch_one(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
    ) -> dict | None:
        query = self._build_select(table, columns, filters, None, None, 1)
        rows = await self._execute(f"{table}_select_one", query)
        return rows[0] if rows else None

    async def update(self, table: str, values: dict, filters: dict[str, Any]) -> list[dict]:
        query = self._client.table(table).update(values)
        for column, value in filters.items():
            query = query.eq(column, value)
        return await self._execute(f"{table}_update", query)

    async def insert(self, table: str, rows: list[dict]) -> list[dict]:
        """Insert rows in one request and return them as stored."""
        return await self._execute(f"{table}_insert", self._client.table(table).insert(rows))

    async def delete(self, table: str, filters: dict[str, Any]) -> list[dict]:
        query = self._client.table(table).delete()
        for column, value in filters.items():
            query = query.eq(column, value)
        return await self._execute(f"{table}_delete", query)

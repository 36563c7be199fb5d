from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import MetaData, String, Table, cast, create_engine, delete, func, insert, or_, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from supabase import Client as SupabaseClient
from supabase import create_client

from .errors import RecordNotFoundError, RemoteDataError, UnknownTableError
from .query import EqualsFilter, InFilter, NotNullFilter, Query, QueryResult, RangeFilter
from .storage import FileStorage, LocalFileStorage, SupabaseFileStorage
from .storage_config import StorageConfig, load_storage_config

logger = logging.getLogger(__name__)


class RemoteDataClient:
    """
    Row-level access to the hosted data store.

    Implementations are injected into hooks and services; nothing in the
    package reaches for a global client. All methods are coroutines because
    every call is a network round-trip in production.
    """

    storage: Optional[FileStorage] = None

    async def select(self, query: Query) -> QueryResult:
        raise NotImplementedError

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def update(
        self,
        table: str,
        patch: Mapping[str, Any],
        column: str,
        value: Any,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def delete(self, table: str, column: str, value: Any) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def select_one(self, table: str, column: str, value: Any) -> Dict[str, Any]:
        result = await self.select(Query(table=table).where(EqualsFilter(column, value)).with_limit(1))
        if not result.rows:
            raise RecordNotFoundError(table, column, value)
        return result.rows[0]


class SQLRemoteDataClient(RemoteDataClient):
    """
    SQLAlchemy Core implementation used for self-hosted Postgres and for tests.

    Tables are reflected on first use. Calls run in a worker thread so the event
    loop keeps serving other hooks while a query is in flight.
    """

    def __init__(self, engine: Engine, storage: Optional[FileStorage] = None):
        self.engine = engine
        self.storage = storage
        self.metadata = MetaData()
        self._tables: Dict[str, Table] = {}
        self._lock = threading.Lock()

    async def select(self, query: Query) -> QueryResult:
        return await self._run(self._select_sync, query)

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        return await self._run(self._insert_sync, table, [dict(row) for row in rows])

    async def update(
        self,
        table: str,
        patch: Mapping[str, Any],
        column: str,
        value: Any,
    ) -> List[Dict[str, Any]]:
        return await self._run(self._update_sync, table, dict(patch), column, value)

    async def delete(self, table: str, column: str, value: Any) -> List[Dict[str, Any]]:
        return await self._run(self._delete_sync, table, column, value)

    async def _run(self, func_, *args):
        try:
            return await asyncio.to_thread(func_, *args)
        except SQLAlchemyError as exc:
            raise RemoteDataError(str(exc)) from exc

    def _table(self, name: str) -> Table:
        with self._lock:
            table = self._tables.get(name)
            if table is None:
                try:
                    table = Table(name, self.metadata, autoload_with=self.engine)
                except NoSuchTableError as exc:
                    raise UnknownTableError(name) from exc
                self._tables[name] = table
            return table

    @staticmethod
    def _column(table: Table, name: str):
        try:
            return table.c[name]
        except KeyError as exc:
            raise RemoteDataError(f"column {table.name}.{name} does not exist") from exc

    def _select_sync(self, query: Query) -> QueryResult:
        table = self._table(query.table)
        if query.columns.strip() == "*":
            columns = list(table.c)
        else:
            columns = [self._column(table, name.strip()) for name in query.columns.split(",") if name.strip()]

        conditions = self._conditions(table, query)
        stmt = select(*columns)
        if conditions:
            stmt = stmt.where(*conditions)
        for order in query.order:
            column = self._column(table, order.column)
            stmt = stmt.order_by(column.asc() if order.ascending else column.desc())

        limit = query.limit
        if query.row_range is not None:
            start, end = query.row_range
            size = max(end - start + 1, 0)
            stmt = stmt.offset(start)
            limit = size if limit is None else min(limit, size)
        if limit is not None:
            stmt = stmt.limit(limit)

        with self.engine.connect() as connection:
            rows = [dict(row) for row in connection.execute(stmt).mappings()]
            count = None
            if query.count:
                count_stmt = select(func.count()).select_from(table)
                if conditions:
                    count_stmt = count_stmt.where(*conditions)
                count = int(connection.execute(count_stmt).scalar_one())
        return QueryResult(rows=rows, count=count)

    def _conditions(self, table: Table, query: Query) -> list:
        conditions = []
        for flt in query.filters:
            column = self._column(table, flt.column)
            if isinstance(flt, EqualsFilter):
                conditions.append(column == flt.value)
            elif isinstance(flt, RangeFilter):
                if flt.gte is not None:
                    conditions.append(column >= flt.gte)
                if flt.lte is not None:
                    conditions.append(column <= flt.lte)
            elif isinstance(flt, NotNullFilter):
                conditions.append(column.isnot(None))
            elif isinstance(flt, InFilter):
                conditions.append(column.in_(list(flt.values)))
            else:
                raise TypeError(f"Unsupported filter: {flt!r}")
        if query.search is not None:
            pattern = f"%{escape_like(query.search.term)}%"
            conditions.append(
                or_(
                    *[
                        cast(self._column(table, name), String).ilike(pattern, escape="\\")
                        for name in query.search.columns
                    ]
                )
            )
        return conditions

    def _insert_sync(self, table_name: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        table = self._table(table_name)
        inserted: List[Dict[str, Any]] = []
        with self.engine.begin() as connection:
            for row in rows:
                result = connection.execute(insert(table).values(**row).returning(*table.c))
                inserted.append(dict(result.mappings().one()))
        return inserted

    def _update_sync(self, table_name: str, patch: Dict[str, Any], column: str, value: Any) -> List[Dict[str, Any]]:
        table = self._table(table_name)
        stmt = update(table).where(self._column(table, column) == value).values(**patch).returning(*table.c)
        with self.engine.begin() as connection:
            return [dict(row) for row in connection.execute(stmt).mappings()]

    def _delete_sync(self, table_name: str, column: str, value: Any) -> List[Dict[str, Any]]:
        table = self._table(table_name)
        stmt = delete(table).where(self._column(table, column) == value).returning(*table.c)
        with self.engine.begin() as connection:
            return [dict(row) for row in connection.execute(stmt).mappings()]


class SupabaseRemoteDataClient(RemoteDataClient):
    """Translate ``Query`` objects into PostgREST builder chains."""

    def __init__(self, client: SupabaseClient, storage: Optional[FileStorage] = None):
        self.client = client
        self.storage = storage if storage is not None else SupabaseFileStorage(client)

    async def select(self, query: Query) -> QueryResult:
        response = await self._execute(lambda: self._build_select(query).execute(), f"select {query.table}")
        return QueryResult(rows=list(response.data or []), count=response.count if query.count else None)

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        payload = [dict(row) for row in rows]
        response = await self._execute(lambda: self.client.table(table).insert(payload).execute(), f"insert {table}")
        return list(response.data or [])

    async def update(
        self,
        table: str,
        patch: Mapping[str, Any],
        column: str,
        value: Any,
    ) -> List[Dict[str, Any]]:
        response = await self._execute(
            lambda: self.client.table(table).update(dict(patch)).eq(column, value).execute(),
            f"update {table}",
        )
        return list(response.data or [])

    async def delete(self, table: str, column: str, value: Any) -> List[Dict[str, Any]]:
        response = await self._execute(
            lambda: self.client.table(table).delete().eq(column, value).execute(),
            f"delete {table}",
        )
        return list(response.data or [])

    def _build_select(self, query: Query):
        if query.count:
            builder = self.client.table(query.table).select(query.columns, count="exact")
        else:
            builder = self.client.table(query.table).select(query.columns)
        for flt in query.filters:
            if isinstance(flt, EqualsFilter):
                builder = builder.eq(flt.column, flt.value)
            elif isinstance(flt, RangeFilter):
                if flt.gte is not None:
                    builder = builder.gte(flt.column, flt.gte)
                if flt.lte is not None:
                    builder = builder.lte(flt.column, flt.lte)
            elif isinstance(flt, NotNullFilter):
                builder = builder.not_.is_(flt.column, "null")
            elif isinstance(flt, InFilter):
                builder = builder.in_(flt.column, list(flt.values))
            else:
                raise TypeError(f"Unsupported filter: {flt!r}")
        if query.search is not None:
            builder = builder.or_(ilike_expression(query.search.columns, query.search.term))
        for order in query.order:
            builder = builder.order(order.column, desc=not order.ascending)
        if query.row_range is not None:
            builder = builder.range(*query.row_range)
        if query.limit is not None:
            builder = builder.limit(query.limit)
        return builder

    @staticmethod
    async def _execute(func_, description: str):
        try:
            return await asyncio.to_thread(func_)
        except Exception as exc:
            logger.warning("Supabase call failed (%s): %s", description, exc)
            raise RemoteDataError(f"{description} failed: {exc}") from exc


_POSTGREST_RESERVED = set(',.:()"\\')


def escape_like(term: str) -> str:
    """Make ``%``, ``_`` and ``\\`` match literally in a LIKE pattern."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def ilike_expression(columns: Sequence[str], term: str) -> str:
    """
    Build the PostgREST ``or`` expression ``a.ilike.%t%,b.ilike.%t%``.

    Values containing PostgREST delimiters are double-quoted, with ``"`` and
    ``\\`` backslash-escaped inside the quotes.
    """

    value = f"%{escape_like(term)}%"
    if _POSTGREST_RESERVED.intersection(value):
        value = '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return ",".join(f"{column}.ilike.{value}" for column in columns)


def build_client(config: Optional[StorageConfig] = None) -> RemoteDataClient:
    cfg = config or load_storage_config(None)
    database = cfg.database

    if database.backend == "supabase":
        if not (database.supabase_url and database.supabase_key):
            raise ValueError("SUPABASE_URL and SUPABASE_KEY are required for the supabase backend.")
        supabase_client = create_client(database.supabase_url, database.supabase_key)
        storage = _build_storage(cfg, supabase_client)
        return SupabaseRemoteDataClient(supabase_client, storage=storage)

    if not database.url:
        raise ValueError("DATABASE_URL is required for the sql backend.")
    engine = create_engine(database.url, echo=database.echo, future=True)
    return SQLRemoteDataClient(engine, storage=_build_storage(cfg, None))


def _build_storage(cfg: StorageConfig, supabase_client: Optional[SupabaseClient]) -> Optional[FileStorage]:
    media = cfg.media
    if media.provider == "local_fs":
        return LocalFileStorage(media.local_directory, public_base_url=media.public_base_url)
    if media.provider == "supabase":
        if supabase_client is None:
            if not (cfg.database.supabase_url and cfg.database.supabase_key):
                raise ValueError("Supabase media storage requires SUPABASE_URL and SUPABASE_KEY.")
            supabase_client = create_client(cfg.database.supabase_url, cfg.database.supabase_key)
        return SupabaseFileStorage(supabase_client)
    return None

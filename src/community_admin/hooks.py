from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, Tuple, TypeVar

from .debounce import DebouncedSearch
from .errors import AdminDataError
from .filters import FilterAccumulator, normalize_filters, to_query_filters
from .query import Filter, OrderBy, PageRequest, Query, total_pages
from .remote import RemoteDataClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class QueryParams:
    """
    Inputs that drive a list fetch. Two instances with equal fields describe
    the same request; ``page_size=None`` fetches every row.
    """

    page: int = 1
    page_size: Optional[int] = 20
    search: str = ""
    filters: Tuple[Tuple[str, Any], ...] = ()

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.page_size is not None and self.page_size < 1:
            raise ValueError("page_size must be > 0")

    @classmethod
    def build(
        cls,
        page: int = 1,
        page_size: Optional[int] = 20,
        search: str = "",
        filters: Optional[Mapping[str, Any]] = None,
    ) -> "QueryParams":
        return cls(page=page, page_size=page_size, search=search or "", filters=normalize_filters(filters))

    @property
    def filter_map(self) -> Dict[str, Any]:
        return dict(self.filters)

    @property
    def page_request(self) -> Optional[PageRequest]:
        if self.page_size is None:
            return None
        return PageRequest(page=self.page, page_size=self.page_size)


@dataclass(frozen=True)
class EntitySpec:
    """
    What one list view reads: the table, which columns the search box matches,
    default ordering and which column each date-range filter constrains.
    ``filters`` are fixed constraints applied on top of the user's filters.
    """

    table: str
    search_columns: Tuple[str, ...] = ()
    order: Tuple[OrderBy, ...] = ()
    range_columns: Mapping[str, str] = field(default_factory=dict)
    columns: str = "*"
    id_column: str = "id"
    filters: Tuple[Filter, ...] = ()
    limit: Optional[int] = None

    def build_query(self, params: QueryParams) -> Query:
        query = Query(table=self.table, columns=self.columns, filters=self.filters, order=self.order, limit=self.limit)
        query = query.search_for(params.search, self.search_columns)
        query = query.where(*to_query_filters(params.filter_map, self.range_columns))
        page = params.page_request
        if page is not None:
            query = query.paginate(page)
        return query


@dataclass(frozen=True)
class QueryState(Generic[T]):
    data: Optional[T] = None
    count: int = 0
    loading: bool = True
    error: Optional[Exception] = None

    def total_pages(self, page_size: int) -> int:
        return total_pages(self.count, page_size)


@dataclass(frozen=True)
class MutationResult:
    success: bool
    error: Optional[Exception] = None
    data: Any = None


class QueryHook(Generic[T]):
    """
    ``{data, loading, error}`` state for one entity list.

    Parameter changes go through ``set_params``: when the new parameters differ
    structurally from the current ones a fetch task is scheduled and the
    previous in-flight fetch is cancelled. Responses carry the request id they
    were issued under and only the latest id may write state, so a slow older
    response can never overwrite a newer one.
    """

    def __init__(
        self,
        client: RemoteDataClient,
        spec: EntitySpec,
        params: Optional[QueryParams] = None,
        transform: Optional[Callable[[List[Dict[str, Any]]], Any]] = None,
        on_change: Optional[Callable[["QueryState[T]"], None]] = None,
    ):
        self.client = client
        self.spec = spec
        self.params = params or QueryParams()
        self.transform = transform
        self.on_change = on_change
        self.state: QueryState[T] = QueryState()
        self._request_id = 0
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def data(self) -> Optional[T]:
        return self.state.data

    @property
    def loading(self) -> bool:
        return self.state.loading

    @property
    def error(self) -> Optional[Exception]:
        return self.state.error

    @property
    def count(self) -> int:
        return self.state.count

    @property
    def total_pages(self) -> int:
        if self.params.page_size is None:
            return 1 if self.state.count else 0
        return self.state.total_pages(self.params.page_size)

    async def load(self, params: QueryParams) -> Tuple[Any, int]:
        """Fetch and shape one page. Subclasses override for multi-step reads."""
        result = await self.client.select(self.spec.build_query(params))
        data = result.rows
        if self.transform is not None:
            data = self.transform(data)
            if inspect.isawaitable(data):
                data = await data
        count = result.count if result.count is not None else len(result.rows)
        return data, count

    async def refetch(self) -> QueryState[T]:
        if self._closed:
            return self.state
        self._request_id += 1
        request_id = self._request_id
        params = self.params
        self._set_state(replace(self.state, loading=True))
        try:
            data, count = await self.load(params)
        except Exception as exc:
            if self._is_current(request_id):
                logger.warning("Fetch from %s failed: %s", self.spec.table, exc)
                self._set_state(QueryState(data=None, count=0, loading=False, error=exc))
            return self.state
        if self._is_current(request_id):
            self._set_state(QueryState(data=data, count=count, loading=False, error=None))
        else:
            logger.debug("Discarding stale response %s for %s", request_id, self.spec.table)
        return self.state

    def set_params(self, **changes: Any) -> Optional[asyncio.Task]:
        if "filters" in changes:
            changes["filters"] = normalize_filters(changes["filters"])
        new_params = replace(self.params, **changes)
        if new_params == self.params:
            return None
        self.params = new_params
        return self.schedule()

    def schedule(self) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.get_running_loop().create_task(self.refetch())
        return self._task

    async def update_params(self, **changes: Any) -> QueryState[T]:
        task = self.set_params(**changes)
        if task is not None:
            # a newer change may cancel this task; the state then belongs to it
            await asyncio.wait({task})
        return self.state

    async def set_page(self, page: int) -> QueryState[T]:
        return await self.update_params(page=page)

    async def set_search(self, search: str) -> QueryState[T]:
        return await self.update_params(search=search)

    async def set_filters(self, filters: Mapping[str, Any], page: int = 1) -> QueryState[T]:
        return await self.update_params(filters=filters, page=page)

    async def add(self, payload: Mapping[str, Any]) -> MutationResult:
        return await self._mutate(lambda: self.client.insert(self.spec.table, [payload]), "insert")

    async def update(self, record_id: Any, patch: Mapping[str, Any]) -> MutationResult:
        return await self._mutate(
            lambda: self.client.update(self.spec.table, patch, self.spec.id_column, record_id),
            "update",
        )

    async def delete(self, record_id: Any) -> MutationResult:
        return await self._mutate(
            lambda: self.client.delete(self.spec.table, self.spec.id_column, record_id),
            "delete",
        )

    async def wait(self) -> QueryState[T]:
        """Wait for the most recently scheduled fetch, if it is still running."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        return self.state

    def close(self) -> None:
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self.state.loading:
            self._set_state(replace(self.state, loading=False))

    async def _mutate(self, write: Callable[[], Any], action: str) -> MutationResult:
        try:
            data = await write()
        except AdminDataError as exc:
            logger.warning("Failed to %s %s: %s", action, self.spec.table, exc)
            return MutationResult(success=False, error=exc)
        await self.refetch()
        return MutationResult(success=True, data=data)

    def _is_current(self, request_id: int) -> bool:
        return not self._closed and request_id == self._request_id

    def _set_state(self, state: QueryState[T]) -> None:
        self.state = state
        if self.on_change is not None:
            self.on_change(state)


class PaginatedList:
    """
    A list screen: one hook fed by a debounced search box and a filter
    accumulator. Search commits and filter changes both send the list back to
    page one.
    """

    def __init__(self, hook: QueryHook, debounce_seconds: float = 0.5):
        self.hook = hook
        self.search = DebouncedSearch(delay=debounce_seconds, on_commit=self._on_search)
        self.filters = FilterAccumulator(
            on_change=self._on_filters,
            initial=hook.params.filter_map,
            page=hook.params.page,
        )

    def type_search(self, text: str) -> None:
        self.search.set_input(text)

    def apply_filter(self, filter_id: str, value: Any) -> None:
        self.filters.apply_filter(filter_id, value)

    def clear_filter(self, filter_id: str) -> None:
        self.filters.clear_filter(filter_id)

    def clear_all_filters(self) -> None:
        self.filters.clear_all_filters()

    def go_to_page(self, page: int) -> None:
        self.filters.set_page(page)

    async def settle(self) -> QueryState:
        """Wait for pending search callbacks and the latest scheduled fetch."""
        await self.search.wait_idle()
        return await self.hook.wait()

    def close(self) -> None:
        self.search.close()
        self.hook.close()

    async def _on_search(self, term: str) -> None:
        if term != self.hook.params.search:
            self.filters.page = 1
        self.hook.set_params(search=term, page=self.filters.page)

    def _on_filters(self, filters: Dict[str, Any], page: int) -> None:
        self.hook.set_params(filters=filters, page=page)

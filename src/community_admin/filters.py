from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .query import EqualsFilter, Filter, RangeFilter

EMPTY_SENTINELS = ("", "all")


@dataclass(frozen=True)
class DateRange:
    """``from``/``to`` bounds picked in a date filter. Either end may be open."""

    start: Any = None
    end: Any = None

    @property
    def is_empty(self) -> bool:
        return _is_blank(self.start) and _is_blank(self.end)


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def coerce_filter_value(value: Any) -> Any:
    """Accept ``{"from": .., "to": ..}`` mappings from JSON callers as ``DateRange``."""
    if isinstance(value, Mapping):
        return DateRange(start=value.get("from"), end=value.get("to"))
    return value


def is_empty_value(value: Any) -> bool:
    value = coerce_filter_value(value)
    if value is None:
        return True
    if isinstance(value, DateRange):
        return value.is_empty
    if isinstance(value, str):
        return value in EMPTY_SENTINELS
    return False


def normalize_filters(filters: Optional[Mapping[str, Any]]) -> Tuple[Tuple[str, Any], ...]:
    """
    Drop empty entries and freeze the map into a sorted tuple so two maps with
    the same live entries compare equal.
    """

    if not filters:
        return ()
    live = {
        key: coerce_filter_value(value)
        for key, value in filters.items()
        if not is_empty_value(value)
    }
    return tuple(sorted(live.items(), key=lambda item: item[0]))


def to_query_filters(
    filters: Mapping[str, Any],
    range_columns: Optional[Mapping[str, str]] = None,
) -> Tuple[Filter, ...]:
    range_columns = range_columns or {}
    result = []
    for key, value in normalize_filters(filters):
        if isinstance(value, DateRange):
            column = range_columns.get(key)
            if column is None:
                raise ValueError(f"Filter {key!r} is a date range but no column is designated for it")
            result.append(RangeFilter(column=column, gte=value.start, lte=value.end))
        else:
            result.append(EqualsFilter(column=key, value=value))
    return tuple(result)


class FilterAccumulator:
    """
    Live filter selections for one list view plus the page they apply to.

    ``on_change`` receives ``(filters, page)`` after every mutation so a list
    hook can refetch.
    """

    def __init__(
        self,
        on_change: Optional[Callable[[Dict[str, Any], int], Any]] = None,
        initial: Optional[Mapping[str, Any]] = None,
        page: int = 1,
    ):
        self._filters: Dict[str, Any] = dict(normalize_filters(initial))
        self.page = page
        self.on_change = on_change

    @property
    def filters(self) -> Dict[str, Any]:
        return dict(self._filters)

    @property
    def filter_count(self) -> int:
        return len(self._filters)

    def apply_filter(self, filter_id: str, value: Any) -> None:
        if is_empty_value(value):
            self._filters.pop(filter_id, None)
        else:
            self._filters[filter_id] = coerce_filter_value(value)
        self.page = 1
        self._notify()

    def clear_filter(self, filter_id: str) -> None:
        self._filters.pop(filter_id, None)
        self._notify()

    def clear_all_filters(self) -> None:
        self._filters.clear()
        self.page = 1
        self._notify()

    def set_page(self, page: int) -> None:
        if page < 1:
            raise ValueError("page must be >= 1")
        self.page = page
        self._notify()

    def to_query_filters(self, range_columns: Optional[Mapping[str, str]] = None) -> Tuple[Filter, ...]:
        return to_query_filters(self._filters, range_columns)

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.filters, self.page)

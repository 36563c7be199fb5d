import pytest

from community_admin.filters import DateRange, FilterAccumulator, normalize_filters, to_query_filters
from community_admin.query import EqualsFilter, RangeFilter


@pytest.mark.parametrize("empty", ["", None, "all"])
def test_empty_values_remove_the_filter(empty):
    filters = FilterAccumulator()
    filters.apply_filter("gender", "Male")
    filters.apply_filter("gender", empty)
    assert "gender" not in filters.filters
    assert filters.filter_count == 0


def test_apply_filter_resets_page():
    filters = FilterAccumulator()
    filters.set_page(4)
    filters.apply_filter("blood_group", "O+")
    assert filters.page == 1


def test_clear_filter_keeps_page():
    filters = FilterAccumulator()
    filters.apply_filter("gender", "Female")
    filters.set_page(3)
    filters.clear_filter("gender")
    assert filters.page == 3
    assert filters.filters == {}


def test_clear_all_filters_resets_page():
    filters = FilterAccumulator()
    filters.apply_filter("gender", "Female")
    filters.apply_filter("blood_group", "B+")
    filters.set_page(2)
    filters.clear_all_filters()
    assert filters.filters == {}
    assert filters.page == 1


def test_set_page_validates():
    with pytest.raises(ValueError):
        FilterAccumulator().set_page(0)


def test_date_range_mapping_is_coerced():
    filters = FilterAccumulator()
    filters.apply_filter("dateRange", {"from": "2024-01-01", "to": None})
    assert filters.filters["dateRange"] == DateRange(start="2024-01-01")

    filters.apply_filter("dateRange", {"from": None, "to": ""})
    assert "dateRange" not in filters.filters


def test_on_change_receives_filters_and_page():
    calls = []
    filters = FilterAccumulator(on_change=lambda current, page: calls.append((current, page)))
    filters.apply_filter("gender", "Male")
    filters.set_page(2)
    assert calls == [({"gender": "Male"}, 1), ({"gender": "Male"}, 2)]


def test_initial_filters_drop_empty_entries():
    filters = FilterAccumulator(initial={"gender": "Male", "city": "all", "state": ""}, page=3)
    assert filters.filters == {"gender": "Male"}
    assert filters.page == 3


def test_to_query_filters_builds_tagged_union():
    result = to_query_filters(
        {"gender": "Male", "dateRange": DateRange("2024-01-01", "2024-01-31")},
        {"dateRange": "updated_at"},
    )
    assert set(result) == {
        EqualsFilter("gender", "Male"),
        RangeFilter("updated_at", gte="2024-01-01", lte="2024-01-31"),
    }


def test_range_filter_without_column_is_rejected():
    with pytest.raises(ValueError):
        to_query_filters({"dateRange": DateRange("2024-01-01")}, {})


def test_normalize_filters_is_order_independent():
    assert normalize_filters({"b": 1, "a": 2, "c": ""}) == normalize_filters({"a": 2, "b": 1})

import pytest

from community_admin.query import EqualsFilter, PageRequest, Query, SearchClause, total_pages
from community_admin.remote import escape_like, ilike_expression


@pytest.mark.parametrize(
    "count,page_size,expected",
    [(0, 20, 0), (1, 20, 1), (20, 20, 1), (21, 20, 2), (25, 20, 2), (27, 9, 3), (28, 9, 4)],
)
def test_total_pages_is_ceiling(count, page_size, expected):
    assert total_pages(count, page_size) == expected


def test_total_pages_rejects_zero_page_size():
    with pytest.raises(ValueError):
        total_pages(10, 0)


@pytest.mark.parametrize("page,size", [(1, 20), (2, 20), (3, 9), (7, 12)])
def test_row_range_is_inclusive_slice(page, size):
    start, end = PageRequest(page=page, page_size=size).row_range()
    assert start == (page - 1) * size
    assert end == page * size - 1


def test_page_request_validates_bounds():
    with pytest.raises(ValueError):
        PageRequest(page=0)
    with pytest.raises(ValueError):
        PageRequest(page=1, page_size=0)


def test_query_builders_do_not_mutate():
    base = Query(table="profiles")
    filtered = base.where(EqualsFilter("gender", "Male"))
    assert base.filters == ()
    assert filtered.filters == (EqualsFilter("gender", "Male"),)


def test_blank_search_is_ignored():
    base = Query(table="profiles")
    assert base.search_for("   ", ["name"]) is base
    assert base.search_for("ann ", ["name", "email"]).search == SearchClause(("name", "email"), "ann")


def test_paginate_requests_exact_count():
    query = Query(table="profiles").paginate(PageRequest(page=2, page_size=20))
    assert query.row_range == (20, 39)
    assert query.count is True


def test_ilike_expression_matches_hosted_syntax():
    assert ilike_expression(["name", "surname"], "ann") == "name.ilike.%ann%,surname.ilike.%ann%"


@pytest.mark.parametrize(
    "term,expected",
    [
        ("Shah, Raj", 'name.ilike."%Shah, Raj%"'),
        ("50%", 'name.ilike."%50\\\\%%"'),
        ('say "hi"', 'name.ilike."%say \\"hi\\"%"'),
    ],
)
def test_ilike_expression_quotes_reserved_characters(term, expected):
    assert ilike_expression(["name"], term) == expected


def test_escape_like_neutralises_wildcards():
    assert escape_like("a_b%c\\") == "a\\_b\\%c\\\\"

import asyncio
from typing import List, Tuple

from community_admin.entities import use_doctors, use_profiles
from community_admin.errors import RemoteDataError, UnknownTableError
from community_admin.hooks import EntitySpec, PaginatedList, QueryHook, QueryParams
from community_admin.query import Query, QueryResult
from community_admin.remote import RemoteDataClient, SQLRemoteDataClient


class ControlledClient(RemoteDataClient):
    """Each select waits until the test resolves its future."""

    def __init__(self):
        self.pending: List[Tuple[Query, asyncio.Future]] = []

    async def select(self, query):
        future = asyncio.get_running_loop().create_future()
        self.pending.append((query, future))
        return await future


async def _wait_for_pending(client: ControlledClient, count: int) -> None:
    while len(client.pending) < count:
        await asyncio.sleep(0)


async def test_twenty_five_members_paginate_into_two_pages(client, seed, members):
    seed("profiles", members(25))
    hook = use_profiles(client, page=1, page_size=20)

    state = await hook.refetch()
    assert len(state.data) == 20
    assert state.count == 25
    assert hook.total_pages == 2
    assert state.loading is False and state.error is None

    state = await hook.set_page(2)
    assert len(state.data) == 5
    assert {row["id"] for row in state.data} == set(range(21, 26))


async def test_page_past_the_end_is_empty_not_an_error(client, seed, members):
    seed("profiles", members(25))
    hook = use_profiles(client, page=5, page_size=20)
    state = await hook.refetch()
    assert state.data == []
    assert state.count == 25
    assert state.error is None


async def test_search_is_case_insensitive_across_columns(client, seed, members):
    rows = members(5)
    rows[2]["email"] = "Priya@example.com"
    seed("profiles", rows)
    hook = use_profiles(client, search="priya")
    state = await hook.refetch()
    assert [row["id"] for row in state.data] == [3]
    assert state.count == 1


async def test_equality_and_range_filters(client, seed, members):
    seed("profiles", members(10))
    hook = use_profiles(
        client,
        filters={
            "gender": "Female",
            "dateRange": {"from": "2024-01-03", "to": "2024-01-08"},
            "city": "all",
        },
    )
    state = await hook.refetch()
    assert sorted(row["id"] for row in state.data) == [4, 6]


async def test_identical_params_schedule_nothing(client):
    hook = use_profiles(client, page=1, page_size=20)
    assert hook.set_params(page=1, filters={"gender": ""}) is None
    assert hook.set_params(page=2) is not None
    hook.close()


async def test_failed_fetch_sets_error_state(engine):
    hook = QueryHook(SQLRemoteDataClient(engine), EntitySpec(table="no_such_table"))
    state = await hook.refetch()
    assert isinstance(state.error, UnknownTableError)
    assert state.data is None
    assert state.loading is False


async def test_stale_response_never_overwrites_newer_one():
    client = ControlledClient()
    hook = QueryHook(client, EntitySpec(table="profiles"), QueryParams(page_size=None))

    older = asyncio.ensure_future(hook.refetch())
    newer = asyncio.ensure_future(hook.refetch())
    await _wait_for_pending(client, 2)

    client.pending[1][1].set_result(QueryResult(rows=[{"id": "new"}]))
    await newer
    client.pending[0][1].set_result(QueryResult(rows=[{"id": "old"}]))
    await older

    assert hook.data == [{"id": "new"}]
    assert hook.loading is False


async def test_param_change_cancels_in_flight_fetch():
    client = ControlledClient()
    hook = QueryHook(client, EntitySpec(table="profiles"))

    first = hook.set_params(page=2)
    await _wait_for_pending(client, 1)
    second = hook.set_params(page=3)
    await _wait_for_pending(client, 2)
    client.pending[-1][1].set_result(QueryResult(rows=[{"id": 41}], count=41))
    await second

    assert first.cancelled()
    assert hook.params.page == 3
    assert hook.data == [{"id": 41}]
    assert client.pending[-1][0].row_range == (40, 59)


async def test_close_discards_late_completion():
    client = ControlledClient()
    hook = QueryHook(client, EntitySpec(table="profiles"))
    task = asyncio.ensure_future(hook.refetch())
    await _wait_for_pending(client, 1)
    assert hook.loading is True
    hook.close()
    assert hook.loading is False
    client.pending[0][1].set_result(QueryResult(rows=[{"id": 1}], count=1))
    await task
    assert hook.data is None
    assert hook.loading is False


async def test_close_stops_loading_of_cancelled_fetch():
    client = ControlledClient()
    hook = QueryHook(client, EntitySpec(table="profiles"))
    task = hook.set_params(page=2)
    await _wait_for_pending(client, 1)
    hook.close()
    await asyncio.wait({task})
    assert task.cancelled()
    assert hook.loading is False
    assert hook.data is None


async def test_mutations_refetch_and_report(client, seed):
    seed("doctors", [{"id": 1, "name": "Dr. Mehta", "specialization": "Cardiology", "created_at": "2024-01-01"}])
    hook = use_doctors(client)
    await hook.refetch()

    result = await hook.add_doctor({"name": "Dr. Rao", "specialization": "ENT", "created_at": "2024-02-01"})
    assert result.success is True
    assert [row["name"] for row in hook.data] == ["Dr. Rao", "Dr. Mehta"]

    result = await hook.update_doctor(1, {"qualification": "MD"})
    assert result.success is True
    assert next(row for row in hook.data if row["id"] == 1)["qualification"] == "MD"

    result = await hook.delete_doctor(1)
    assert result.success is True
    assert [row["name"] for row in hook.data] == ["Dr. Rao"]


async def test_failed_mutation_returns_error_without_raising(client):
    hook = use_doctors(client)
    result = await hook.add({"no_such_column": "x"})
    assert result.success is False
    assert isinstance(result.error, RemoteDataError)


async def test_on_change_sees_each_transition(client, seed, members):
    seed("profiles", members(3))
    states = []
    hook = QueryHook(client, EntitySpec(table="profiles"), on_change=states.append)
    await hook.refetch()
    assert [state.loading for state in states] == [True, False]
    assert states[-1].count == 3


async def test_paginated_list_search_returns_to_first_page(client, seed, members):
    seed("profiles", members(25))
    screen = PaginatedList(use_profiles(client), debounce_seconds=0.02)

    screen.go_to_page(2)
    state = await screen.settle()
    assert screen.hook.params.page == 2
    assert len(state.data) == 5

    screen.type_search("Member 2")
    await asyncio.sleep(0.06)
    state = await screen.settle()
    assert screen.hook.params.search == "Member 2"
    assert screen.hook.params.page == 1
    assert sorted(row["id"] for row in state.data) == [20, 21, 22, 23, 24, 25]

    screen.apply_filter("gender", "Female")
    state = await screen.settle()
    assert sorted(row["id"] for row in state.data) == [20, 22, 24]
    screen.close()


async def test_search_treats_like_wildcards_literally(client, seed):
    seed(
        "profiles",
        [
            {"id": 1, "name": "50% Club", "surname": "Shah"},
            {"id": 2, "name": "500 Club", "surname": "Shah"},
            {"id": 3, "name": "a_b", "surname": "Shah"},
            {"id": 4, "name": "axb", "surname": "Shah"},
        ],
    )
    state = await use_profiles(client, search="50%").refetch()
    assert [row["id"] for row in state.data] == [1]

    state = await use_profiles(client, search="a_b").refetch()
    assert [row["id"] for row in state.data] == [3]

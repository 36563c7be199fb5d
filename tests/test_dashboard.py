from sqlalchemy import create_engine

from community_admin.configuration import AdminConfig, DashboardConfig
from community_admin.dashboard import (
    DashboardStats,
    DashboardStatsHook,
    DashboardStatsService,
    GenderBreakdown,
    count_distinct_committees,
    count_distinct_families,
    count_genders,
)
from community_admin.errors import UnknownTableError
from community_admin.remote import SQLRemoteDataClient


def test_gender_counts_drop_blank_and_null():
    assert count_genders(["Male", "female", "Other", "", None]) == GenderBreakdown(male=1, female=1, other=1)


def test_gender_counts_are_case_insensitive():
    breakdown = count_genders(["MALE", "Female ", "f", "Trans"])
    assert (breakdown.male, breakdown.female, breakdown.other) == (1, 1, 2)
    assert breakdown.total == 4


def test_distinct_counts():
    assert count_distinct_families([1, 1, 2, None, 3]) == 3
    assert count_distinct_families([]) == 0
    assert count_distinct_committees(["Trust", " trust", "Youth", None, ""]) == 2


async def test_build_collects_every_figure(client, seed, members):
    seed("profiles", members(7) + [{"id": 50, "name": "Blank", "gender": "", "family_no": None}])
    seed("doctors", [{"id": 1, "name": "Dr. A"}, {"id": 2, "name": "Dr. B"}])
    seed("committee", [{"id": 1, "name": "Trust"}, {"id": 2, "name": "trust "}, {"id": 3, "name": "Youth"}])
    seed("events", [{"id": 1, "name": "Mela"}])
    seed(
        "event_applications",
        [
            {"id": i, "name": f"App {i}", "status": "pending" if i < 4 else "rejected", "created_at": f"2024-01-0{i}"}
            for i in range(1, 8)
        ],
    )
    seed("donation_applications", [{"id": 1, "cause": "Food", "status": "pending"}])
    seed("donations", [{"id": 1, "cause": "Books"}, {"id": 2, "cause": "Food"}])

    config = AdminConfig(dashboard=DashboardConfig(recent_applications_limit=3))
    stats = await DashboardStatsService(client, config).build()

    assert stats.total_members == 8
    assert stats.total_families == 5
    assert stats.total_doctors == 2
    assert stats.total_committees == 2
    assert stats.total_events == 1
    assert stats.total_applications == 4
    assert stats.total_donations == 2
    assert stats.gender == GenderBreakdown(male=4, female=3, other=0)
    assert [row["id"] for row in stats.recent_applications] == [7, 6, 5]


def test_as_dict_uses_frontend_keys():
    stats = DashboardStats(total_members=3, gender=GenderBreakdown(male=2, female=1))
    payload = stats.as_dict()
    assert payload["totalMembers"] == 3
    assert payload["maleCount"] == 2
    assert payload["femaleCount"] == 1
    assert payload["otherCount"] == 0
    assert payload["recentApplications"] == []


async def test_hook_reports_failures(tmp_path):
    empty = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    hook = DashboardStatsHook(DashboardStatsService(SQLRemoteDataClient(empty)))
    assert await hook.refresh() is None
    assert isinstance(hook.error, UnknownTableError)
    assert hook.loading is False


async def test_hook_keeps_latest_stats(client):
    hook = DashboardStatsHook(DashboardStatsService(client))
    stats = await hook.refresh()
    assert stats is hook.data
    assert stats.total_members == 0
    assert hook.error is None

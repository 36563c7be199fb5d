from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..configuration import AdminConfig
from ..errors import AdminDataError
from ..query import EqualsFilter, NotNullFilter, Query
from ..remote import RemoteDataClient
from .models import (
    DashboardStats,
    GenderBreakdown,
    count_distinct_committees,
    count_distinct_families,
    count_genders,
)

logger = logging.getLogger(__name__)

PENDING_APPLICATION_TABLES = ("event_applications", "donation_applications")


class DashboardStatsService:
    """
    Builds the overview numbers for the dashboard landing page.

    Every call re-reads the underlying tables; the independent reads run
    concurrently. Gender and family figures are reduced in Python from the raw
    column values.
    """

    def __init__(self, client: RemoteDataClient, config: Optional[AdminConfig] = None) -> None:
        self.client = client
        self.config = config or AdminConfig()

    async def build(self) -> DashboardStats:
        (
            total_members,
            gender,
            total_families,
            total_doctors,
            total_committees,
            total_events,
            total_applications,
            total_donations,
            recent_applications,
        ) = await asyncio.gather(
            self._count("profiles"),
            self._gender_breakdown(),
            self._family_count(),
            self._count("doctors"),
            self._committee_count(),
            self._count("events"),
            self._pending_application_count(),
            self._count("donations"),
            self._recent_applications(),
        )
        return DashboardStats(
            total_members=total_members,
            total_families=total_families,
            total_doctors=total_doctors,
            total_committees=total_committees,
            total_events=total_events,
            total_applications=total_applications,
            total_donations=total_donations,
            gender=gender,
            recent_applications=recent_applications,
        )

    async def _count(self, table: str, *filters) -> int:
        # zero-row window: only the exact count is wanted
        query = Query(table=table, columns="id", filters=tuple(filters)).with_count().with_limit(0)
        result = await self.client.select(query)
        return int(result.count or 0)

    async def _gender_breakdown(self) -> GenderBreakdown:
        result = await self.client.select(Query(table="profiles", columns="gender"))
        return count_genders(row.get("gender") for row in result.rows)

    async def _family_count(self) -> int:
        result = await self.client.select(
            Query(table="profiles", columns="family_no").where(NotNullFilter("family_no"))
        )
        return count_distinct_families(row.get("family_no") for row in result.rows)

    async def _committee_count(self) -> int:
        result = await self.client.select(Query(table="committee", columns="name"))
        return count_distinct_committees(row.get("name") for row in result.rows)

    async def _pending_application_count(self) -> int:
        counts = await asyncio.gather(
            *(
                self._count(table, EqualsFilter("status", "pending"))
                for table in PENDING_APPLICATION_TABLES
            )
        )
        return sum(counts)

    async def _recent_applications(self) -> List[Dict[str, Any]]:
        limit = self.config.dashboard.recent_applications_limit
        query = Query(table="event_applications").order_by("created_at", ascending=False).with_limit(limit)
        return (await self.client.select(query)).rows


class DashboardStatsHook:
    """``{data, loading, error}`` wrapper around one ``DashboardStatsService``."""

    def __init__(self, service: DashboardStatsService) -> None:
        self.service = service
        self.data: Optional[DashboardStats] = None
        self.loading = True
        self.error: Optional[Exception] = None

    async def refresh(self) -> Optional[DashboardStats]:
        self.loading = True
        try:
            stats = await self.service.build()
        except AdminDataError as exc:
            logger.warning("Failed to build dashboard stats: %s", exc)
            self.data = None
            self.error = exc
        else:
            self.data = stats
            self.error = None
        finally:
            self.loading = False
        return self.data

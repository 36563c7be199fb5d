"""
Dashboard overview for the community admin.

Counts members, families, doctors, committees, events, open applications and
donations, and breaks members down by gender, for the landing page cards.
"""

from .models import (  # noqa: F401
    DashboardStats,
    GenderBreakdown,
    count_distinct_committees,
    count_distinct_families,
    count_genders,
)
from .service import DashboardStatsHook, DashboardStatsService  # noqa: F401

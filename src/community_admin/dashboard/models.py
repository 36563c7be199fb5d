from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence


@dataclass(frozen=True)
class GenderBreakdown:
    """
    Member counts per gender bucket.

    Values other than male/female land in ``other``; blank and missing genders
    are not counted anywhere, so the three buckets may sum to less than the
    member total.
    """

    male: int = 0
    female: int = 0
    other: int = 0

    @property
    def total(self) -> int:
        return self.male + self.female + self.other


@dataclass(frozen=True)
class DashboardStats:
    total_members: int = 0
    total_families: int = 0
    total_doctors: int = 0
    total_committees: int = 0
    total_events: int = 0
    total_applications: int = 0
    total_donations: int = 0
    gender: GenderBreakdown = field(default_factory=GenderBreakdown)
    recent_applications: Sequence[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        """
        Convert into the camelCase structure the admin frontend renders.
        """

        return {
            "totalMembers": self.total_members,
            "totalFamilies": self.total_families,
            "totalDoctors": self.total_doctors,
            "totalCommittees": self.total_committees,
            "totalEvents": self.total_events,
            "totalApplications": self.total_applications,
            "totalDonations": self.total_donations,
            "maleCount": self.gender.male,
            "femaleCount": self.gender.female,
            "otherCount": self.gender.other,
            "recentApplications": [dict(row) for row in self.recent_applications],
        }


def count_genders(values: Iterable[Optional[str]]) -> GenderBreakdown:
    male = female = other = 0
    for value in values:
        if value is None:
            continue
        normalized = str(value).strip().lower()
        if not normalized:
            continue
        if normalized == "male":
            male += 1
        elif normalized == "female":
            female += 1
        else:
            other += 1
    return GenderBreakdown(male=male, female=female, other=other)


def count_distinct_families(values: Iterable[Any]) -> int:
    return len({value for value in values if value is not None and value != ""})


def count_distinct_committees(names: Iterable[Optional[str]]) -> int:
    """Committees are stored one row per member; count distinct names."""
    keys: List[str] = [(name or "").strip().lower() for name in names]
    return len({key for key in keys if key})

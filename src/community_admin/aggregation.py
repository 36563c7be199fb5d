from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

MONTH_ABBREVIATIONS = (
    "jan", "feb", "mar", "apr", "may", "jun",
    "jul", "aug", "sep", "oct", "nov", "dec",
)
BIRTHDAY_WINDOWS = ("all", "today", "month")


# ---------------------------------------------------------------------------
# committees


@dataclass(frozen=True)
class CommitteeImage:
    name: str
    url: str
    created_at: Optional[str] = None
    size: int = 0
    content_type: str = "image/jpeg"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "created_at": self.created_at,
            "size": self.size,
            "contentType": self.content_type,
        }


@dataclass(frozen=True)
class CommitteeMember:
    id: Any
    name: str
    role: str
    phone: str = ""
    location: str = ""
    image: str = ""


@dataclass(frozen=True)
class Committee:
    key: str
    name: str
    image: str
    members: Sequence[CommitteeMember] = field(default_factory=tuple)

    @property
    def head(self) -> Optional[CommitteeMember]:
        return self.members[0] if self.members else None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.key,
            "name": self.name,
            "image": self.image,
            "memberCount": len(self.members),
            "members": [
                {
                    "id": member.id,
                    "name": member.name,
                    "role": member.role,
                    "phone": member.phone,
                    "location": member.location,
                    "image": member.image,
                }
                for member in self.members
            ],
        }


def committee_key(name: Optional[str]) -> str:
    return (name or "").strip().lower()


def _image_key(file_name: str) -> str:
    stem, _ext = os.path.splitext(file_name)
    return stem.strip().lower()


def group_committees(
    rows: Iterable[Mapping[str, Any]],
    images: Sequence[CommitteeImage] = (),
    placeholder: str = "",
    member_placeholder: str = "",
) -> List[Committee]:
    """
    Group flat ``committee`` rows (one row per member) into committees.

    Rows are grouped by the trimmed, lower-cased committee name and groups keep
    the order in which their first row appears. Inside a group the earliest row
    by ``(created_at, id)`` is the Head. A committee picture is matched by file
    name without extension, case-insensitively.
    """

    groups: Dict[str, List[Mapping[str, Any]]] = {}
    display_names: Dict[str, str] = {}
    for row in rows:
        key = committee_key(row.get("name"))
        if key not in groups:
            groups[key] = []
            display_names[key] = (row.get("name") or "").strip()
        groups[key].append(row)

    image_by_key = {}
    for image in images:
        image_by_key.setdefault(_image_key(image.name), image.url)

    committees = []
    for key, members in groups.items():
        ordered = sorted(members, key=lambda row: (str(row.get("created_at") or ""), row.get("id") or 0))
        committee_members = tuple(
            CommitteeMember(
                id=row.get("id"),
                name=row.get("member_name") or "",
                role="Head" if index == 0 else "Member",
                phone=row.get("phone") or "",
                location=row.get("location") or "",
                image=row.get("image_url") or member_placeholder,
            )
            for index, row in enumerate(ordered)
        )
        committees.append(
            Committee(
                key=key,
                name=display_names[key],
                image=image_by_key.get(key, placeholder),
                members=committee_members,
            )
        )
    return committees


def search_committees(committees: Sequence[Committee], term: str) -> List[Committee]:
    needle = (term or "").strip().lower()
    if not needle:
        return list(committees)
    return [committee for committee in committees if needle in committee.name.lower()]


# ---------------------------------------------------------------------------
# families


@dataclass(frozen=True)
class Family:
    id: Any
    name: str
    head_name: str
    head_image: str
    cover_image: str
    address: str
    city: str
    state: str
    pin_code: str
    members: Sequence[Dict[str, Any]] = field(default_factory=tuple)

    @property
    def total_members(self) -> int:
        return len(self.members)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "headName": self.head_name,
            "headImage": self.head_image,
            "coverImage": self.cover_image,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "pinCode": self.pin_code,
            "totalMembers": self.total_members,
            "members": list(self.members),
        }


def find_family_head(members: Sequence[Mapping[str, Any]]) -> Mapping[str, Any]:
    for member in members:
        if (member.get("relationship") or "").strip().lower() == "self":
            return member
    return members[0]


def _member_view(row: Mapping[str, Any], image_placeholder: str) -> Dict[str, Any]:
    member = {key: ("" if value is None else value) for key, value in row.items()}
    member["uuid"] = str(row.get("id", ""))
    member["profile_pic"] = row.get("profile_pic") or image_placeholder
    return member


def group_families(
    rows: Iterable[Mapping[str, Any]],
    member_image: str = "",
    cover_image: str = "",
    order: Optional[Sequence[Any]] = None,
) -> List[Family]:
    """
    Group profile rows sharing a ``family_no`` into family cards.

    Rows without a family number are skipped. ``order`` fixes the output order
    of family numbers (e.g. the page order); otherwise first appearance wins.
    """

    groups: Dict[Any, List[Mapping[str, Any]]] = {}
    for row in rows:
        family_no = row.get("family_no")
        if family_no is None or family_no == "":
            continue
        groups.setdefault(family_no, []).append(row)

    keys = [key for key in order if key in groups] if order is not None else list(groups)
    families = []
    for family_no in keys:
        members = groups[family_no]
        head = find_family_head(members)
        surname = head.get("surname") or ""
        families.append(
            Family(
                id=family_no,
                name=f"{surname} Family",
                head_name=f"{head.get('name') or ''} {surname}".strip(),
                head_image=head.get("profile_pic") or member_image,
                cover_image=head.get("family_cover_pic") or cover_image,
                address=head.get("residential_address_line1") or "",
                city=head.get("residential_address_city") or "",
                state=head.get("residential_address_state") or "",
                pin_code=str(head.get("pin_code") or ""),
                members=tuple(_member_view(member, member_image) for member in members),
            )
        )
    return families


def distinct_family_numbers(rows: Iterable[Mapping[str, Any]]) -> List[Any]:
    """Distinct non-null ``family_no`` values in ascending order."""
    seen = {row.get("family_no") for row in rows}
    seen.discard(None)
    seen.discard("")
    return sorted(seen, key=_family_sort_key)


def _family_sort_key(value: Any) -> Tuple[int, float, str]:
    if isinstance(value, (int, float)):
        return 0, value, ""
    return 1, 0, str(value)


# ---------------------------------------------------------------------------
# birthdays


@dataclass(frozen=True)
class Birthday:
    id: str
    name: str
    age: int
    month: int
    day: int
    image: str
    phone: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_date(self) -> str:
        return f"{date(2000, self.month, self.day):%B} {self.day}"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "age": str(self.age),
            "date": self.display_date,
            "image": self.image,
            "phone": self.phone,
            "email": self.email,
        }


def parse_birth_date(value: Optional[str]) -> Optional[Tuple[int, int, int]]:
    """
    Parse ``DD/Mon/YY`` or ``DD/Mon/YYYY`` into ``(year, month, day)``.

    Two digit years below 50 belong to the 2000s, the rest to the 1900s.
    Returns ``None`` for anything that does not parse.
    """

    if not value:
        return None
    parts = value.strip().split("/")
    if len(parts) != 3:
        return None
    day_part, month_part, year_part = (part.strip() for part in parts)
    try:
        month = MONTH_ABBREVIATIONS.index(month_part.lower()) + 1
    except ValueError:
        return None
    if not day_part.isdigit() or not year_part.isdigit():
        return None
    day = int(day_part)
    year = int(year_part)
    if len(year_part) == 2:
        year += 2000 if year < 50 else 1900
    try:
        date(year, month, day)
    except ValueError:
        return None
    return year, month, day


def _age_on(today: date, year: int, month: int, day: int) -> int:
    age = today.year - year
    if (today.month, today.day) < (month, day):
        age -= 1
    return age


def collect_birthdays(
    rows: Iterable[Mapping[str, Any]],
    window: str = "all",
    today: Optional[date] = None,
    placeholder: str = "",
) -> List[Birthday]:
    if window not in BIRTHDAY_WINDOWS:
        raise ValueError(f"window must be one of {', '.join(BIRTHDAY_WINDOWS)}")
    today = today or date.today()

    birthdays = []
    for row in rows:
        parsed = parse_birth_date(row.get("date_of_birth"))
        if parsed is None:
            continue
        year, month, day = parsed
        if window == "today" and (month, day) != (today.month, today.day):
            continue
        if window == "month" and month != today.month:
            continue
        birthdays.append(
            Birthday(
                id=f"{row.get('name')}-{row.get('date_of_birth')}",
                name=f"{row.get('name') or ''} {row.get('surname') or ''}".strip(),
                age=_age_on(today, year, month, day),
                month=month,
                day=day,
                image=row.get("profile_pic") or placeholder,
                phone=row.get("mobile_no1"),
                email=row.get("email"),
            )
        )
    birthdays.sort(key=lambda birthday: (birthday.month, birthday.day))
    return birthdays

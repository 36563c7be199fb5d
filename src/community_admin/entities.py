"""
Concrete hooks for every list and form on the admin dashboard.

Each ``use_*`` factory wires a ``QueryHook`` (or a subclass with extra
mutations) to its table; nothing is fetched until ``refetch()`` or a parameter
change. Hooks that need pictures resolve public URLs through the client's
``FileStorage``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .aggregation import (
    Committee,
    CommitteeImage,
    collect_birthdays,
    distinct_family_numbers,
    group_committees,
    group_families,
)
from .configuration import AdminConfig
from .errors import AdminDataError, RecordNotFoundError, RemoteDataError, ValidationError
from .hooks import EntitySpec, MutationResult, QueryHook, QueryParams
from .query import EqualsFilter, InFilter, NotNullFilter, OrderBy, Query
from .remote import RemoteDataClient
from .storage import FileStorage, upload_data_url

logger = logging.getLogger(__name__)

PROFILE_PICTURES_BUCKET = "profile-pictures"
COMMITTEE_PICTURES_BUCKET = "committee-pictures"
APPLICATION_DOCS_BUCKET = "application-docs"
APPLICATION_PICTURES_BUCKET = "application-pictures"
BUSINESSES_BUCKET = "businesses"
SHUBH_CHINTAK_BUCKET = "shubh-chintak"

PROFILES = EntitySpec(
    table="profiles",
    search_columns=("name", "surname", "email", "mobile_no1"),
    range_columns={"dateRange": "updated_at"},
)
DOCTORS = EntitySpec(
    table="doctors",
    search_columns=("name", "specialization", "qualification"),
    order=(OrderBy("created_at", ascending=False),),
)
COMMITTEES = EntitySpec(table="committee", order=(OrderBy("created_at", ascending=False),))
ARTICLES = EntitySpec(table="articles")
EVENTS = EntitySpec(table="events", order=(OrderBy("start_at"),))
DONATIONS = EntitySpec(table="donations", order=(OrderBy("submitted_at", ascending=False),))
BUSINESSES = EntitySpec(table="nari_sahas")
SHUBH_CHINTAK = EntitySpec(table="shubh_chintak", order=(OrderBy("created_at", ascending=False),))
BIRTHDAY_PROFILES = EntitySpec(
    table="profiles",
    columns="name, surname, date_of_birth, profile_pic, mobile_no1, email",
    filters=(NotNullFilter("date_of_birth"),),
)

ALL_ROWS = QueryParams(page_size=None)


def _storage_of(client: RemoteDataClient, storage: Optional[FileStorage] = None) -> FileStorage:
    storage = storage if storage is not None else client.storage
    if storage is None:
        raise RemoteDataError("No file storage is configured")
    return storage


# ---------------------------------------------------------------------------
# members


def use_profiles(
    client: RemoteDataClient,
    page: int = 1,
    page_size: int = 20,
    search: str = "",
    filters: Optional[Mapping[str, Any]] = None,
) -> QueryHook:
    return QueryHook(client, PROFILES, QueryParams.build(page, page_size, search, filters))


class ProfileHook(QueryHook):
    """Single profile by id; a missing row is reported as ``error``."""

    def __init__(self, client: RemoteDataClient, profile_id: Any, **kwargs: Any):
        super().__init__(client, PROFILES, ALL_ROWS, **kwargs)
        self.profile_id = profile_id

    async def load(self, params: QueryParams) -> Tuple[Any, int]:
        row = await self.client.select_one(self.spec.table, self.spec.id_column, self.profile_id)
        return row, 1


def use_profile(client: RemoteDataClient, profile_id: Any) -> ProfileHook:
    return ProfileHook(client, profile_id)


class FamilyMembersHook(QueryHook):
    """Profiles sharing one family number. A blank number matches nobody."""

    def __init__(self, client: RemoteDataClient, family_no: Any, **kwargs: Any):
        spec = replace(PROFILES, filters=(EqualsFilter("family_no", family_no),))
        super().__init__(client, spec, ALL_ROWS, **kwargs)
        self.family_no = family_no

    async def load(self, params: QueryParams) -> Tuple[Any, int]:
        if self.family_no is None or str(self.family_no).strip() == "":
            return [], 0
        return await super().load(params)


def use_family_members(client: RemoteDataClient, family_no: Any) -> FamilyMembersHook:
    return FamilyMembersHook(client, family_no)


class BirthdaysHook(QueryHook):
    def __init__(
        self,
        client: RemoteDataClient,
        window: str = "all",
        today: Optional[date] = None,
        placeholder: str = "",
        **kwargs: Any,
    ):
        super().__init__(client, BIRTHDAY_PROFILES, ALL_ROWS, **kwargs)
        self.window = window
        self.today = today
        self.placeholder = placeholder

    async def load(self, params: QueryParams) -> Tuple[Any, int]:
        result = await self.client.select(self.spec.build_query(params))
        birthdays = collect_birthdays(result.rows, self.window, self.today, self.placeholder)
        return birthdays, len(birthdays)


def use_birthdays(
    client: RemoteDataClient,
    window: str = "all",
    today: Optional[date] = None,
    config: Optional[AdminConfig] = None,
) -> BirthdaysHook:
    config = config or AdminConfig()
    return BirthdaysHook(client, window, today, placeholder=config.placeholders.person_image)


class FamiliesHook(QueryHook):
    """
    Family cards, paged by family number rather than by profile row.

    The page is cut from the sorted distinct ``family_no`` values of matching
    profiles; every profile of those families is then loaded in one ``in``
    query, so a search hit on one member still brings the whole family.
    """

    def __init__(self, client: RemoteDataClient, params: QueryParams, config: AdminConfig, **kwargs: Any):
        spec = EntitySpec(table="profiles", search_columns=("name", "surname"))
        super().__init__(client, spec, params, **kwargs)
        self.config = config

    async def load(self, params: QueryParams) -> Tuple[Any, int]:
        numbers_query = (
            Query(table=self.spec.table, columns="family_no")
            .where(NotNullFilter("family_no"))
            .search_for(params.search, self.spec.search_columns)
            .order_by("family_no")
        )
        numbers = distinct_family_numbers((await self.client.select(numbers_query)).rows)
        page = params.page_request
        if page is not None:
            selected = numbers[page.offset:page.offset + page.page_size]
        else:
            selected = numbers
        if not selected:
            return [], len(numbers)

        members = await self.client.select(
            Query(table=self.spec.table).where(InFilter("family_no", tuple(selected)))
        )
        families = group_families(
            members.rows,
            member_image=self.config.placeholders.member_image,
            cover_image=self.config.placeholders.family_cover_image,
            order=selected,
        )
        return families, len(numbers)


def use_families(
    client: RemoteDataClient,
    page: int = 1,
    page_size: Optional[int] = None,
    search: str = "",
    config: Optional[AdminConfig] = None,
) -> FamiliesHook:
    config = config or AdminConfig()
    size = page_size or config.pagination.families_page_size
    return FamiliesHook(client, QueryParams.build(page, size, search), config)


class MemberOperations:
    """
    Add, edit and delete member profiles.

    Unlike list hooks these raise on failure; the last exception is also kept
    in ``error`` for the form to show.
    """

    def __init__(self, client: RemoteDataClient, storage: Optional[FileStorage] = None):
        self.client = client
        self.storage = storage
        self.loading = False
        self.error: Optional[Exception] = None

    async def save_member(self, member: Mapping[str, Any], is_update: bool = False) -> Dict[str, Any]:
        self.loading = True
        self.error = None
        try:
            profile = self._prepare(member)
            picture = profile.get("profile_pic")
            if isinstance(picture, str) and picture.startswith("data:image"):
                file_name = f"profile-{int(time.time() * 1000)}.jpg"
                profile["profile_pic"] = await upload_data_url(
                    _storage_of(self.client, self.storage), PROFILE_PICTURES_BUCKET, picture, file_name
                )

            member_id = profile.get("id")
            if is_update and member_id is not None:
                rows = await self.client.update("profiles", profile, "id", member_id)
                if not rows:
                    raise RecordNotFoundError("profiles", "id", member_id)
            else:
                if member_id is None:
                    profile.pop("id", None)
                rows = await self.client.insert("profiles", [profile])
            return rows[0] if rows else profile
        except AdminDataError as exc:
            logger.warning("Failed to save member: %s", exc)
            self.error = exc
            raise
        finally:
            self.loading = False

    async def delete_member(self, member_id: Any) -> None:
        self.loading = True
        self.error = None
        try:
            await self.client.delete("profiles", "id", member_id)
        except AdminDataError as exc:
            logger.warning("Failed to delete member %s: %s", member_id, exc)
            self.error = exc
            raise
        finally:
            self.loading = False

    @staticmethod
    def _prepare(member: Mapping[str, Any]) -> Dict[str, Any]:
        profile = dict(member)
        family_no = profile.get("family_no")
        if family_no is not None and family_no != "":
            try:
                profile["family_no"] = int(family_no)
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"family_no must be a number, got {family_no!r}", field="family_no") from exc
        profile["updated_at"] = datetime.now(timezone.utc).isoformat()
        return profile


# ---------------------------------------------------------------------------
# doctors and committees


class DoctorsHook(QueryHook):
    async def add_doctor(self, doctor: Mapping[str, Any]) -> MutationResult:
        return await self.add(doctor)

    async def update_doctor(self, doctor_id: Any, patch: Mapping[str, Any]) -> MutationResult:
        return await self.update(doctor_id, patch)

    async def delete_doctor(self, doctor_id: Any) -> MutationResult:
        return await self.delete(doctor_id)


def use_doctors(client: RemoteDataClient, page: int = 1, page_size: int = 9, search: str = "") -> DoctorsHook:
    return DoctorsHook(client, DOCTORS, QueryParams.build(page, page_size, search))


class CommitteesHook(QueryHook):
    """Flat committee rows (one per member) with grouping on demand."""

    async def add_committee(self, committee: Mapping[str, Any]) -> MutationResult:
        return await self.add(committee)

    async def update_committee(self, committee_id: Any, patch: Mapping[str, Any]) -> MutationResult:
        return await self.update(committee_id, patch)

    async def delete_committee(self, committee_id: Any) -> MutationResult:
        return await self.delete(committee_id)

    async def add_committee_member(
        self,
        committee_name: str,
        member_name: str,
        phone: str,
        location: Optional[str] = None,
    ) -> MutationResult:
        if not (committee_name or "").strip():
            return MutationResult(success=False, error=ValidationError("Committee name is required", "committee_name"))
        if not (member_name or "").strip():
            return MutationResult(success=False, error=ValidationError("Member name is required", "member_name"))
        return await self.add(
            {"name": committee_name.strip(), "member_name": member_name.strip(), "phone": phone, "location": location}
        )

    def grouped(
        self,
        images: Sequence[CommitteeImage] = (),
        placeholder: str = "",
        member_placeholder: str = "",
    ) -> List[Committee]:
        return group_committees(self.data or [], images, placeholder, member_placeholder)


def use_committees(client: RemoteDataClient) -> CommitteesHook:
    return CommitteesHook(client, COMMITTEES, ALL_ROWS)


class StorageListingHook(QueryHook):
    """Files of one bucket with their public URLs."""

    def __init__(self, client: RemoteDataClient, bucket: str, storage: Optional[FileStorage] = None, **kwargs: Any):
        super().__init__(client, EntitySpec(table=bucket), ALL_ROWS, **kwargs)
        self.bucket = bucket
        self.storage = storage

    async def load(self, params: QueryParams) -> Tuple[Any, int]:
        storage = _storage_of(self.client, self.storage)
        images = [
            CommitteeImage(
                name=entry.name,
                url=storage.get_public_url(self.bucket, entry.name),
                created_at=entry.created_at,
                size=entry.size,
                content_type=entry.content_type,
            )
            for entry in await storage.list(self.bucket)
        ]
        return images, len(images)


def use_committee_images(client: RemoteDataClient, storage: Optional[FileStorage] = None) -> StorageListingHook:
    return StorageListingHook(client, COMMITTEE_PICTURES_BUCKET, storage)


# ---------------------------------------------------------------------------
# content


def use_news(client: RemoteDataClient) -> QueryHook:
    return QueryHook(client, ARTICLES, ALL_ROWS)


def _resolve_images(client: RemoteDataClient, bucket: str, storage: Optional[FileStorage] = None):
    def transform(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not any(row.get("image_url") for row in rows):
            return rows
        resolver = _storage_of(client, storage)
        return [
            {**row, "image_url": resolver.get_public_url(bucket, row["image_url"])} if row.get("image_url") else row
            for row in rows
        ]

    return transform


def use_events(client: RemoteDataClient, storage: Optional[FileStorage] = None) -> QueryHook:
    return QueryHook(client, EVENTS, ALL_ROWS, transform=_resolve_images(client, APPLICATION_DOCS_BUCKET, storage))


def use_donations(client: RemoteDataClient, storage: Optional[FileStorage] = None) -> QueryHook:
    return QueryHook(client, DONATIONS, ALL_ROWS, transform=_resolve_images(client, APPLICATION_DOCS_BUCKET, storage))


class BusinessesHook(QueryHook):
    """``nari_sahas`` businesses with a logo URL and gallery URLs per owner."""

    def __init__(self, client: RemoteDataClient, storage: Optional[FileStorage] = None, **kwargs: Any):
        super().__init__(client, BUSINESSES, ALL_ROWS, **kwargs)
        self.storage = storage

    async def load(self, params: QueryParams) -> Tuple[Any, int]:
        result = await self.client.select(self.spec.build_query(params))
        storage = _storage_of(self.client, self.storage)
        businesses = await asyncio.gather(*(self._with_media(storage, row) for row in result.rows))
        return list(businesses), len(businesses)

    async def _with_media(self, storage: FileStorage, business: Dict[str, Any]) -> Dict[str, Any]:
        owner = business.get("user_id")
        logos, images = await asyncio.gather(
            storage.list(BUSINESSES_BUCKET, f"{owner}/logo"),
            storage.list(BUSINESSES_BUCKET, f"{owner}/images"),
        )
        logo = storage.get_public_url(BUSINESSES_BUCKET, f"{owner}/logo/{logos[0].name}") if logos else None
        return {
            **business,
            "logo": logo,
            "images": [storage.get_public_url(BUSINESSES_BUCKET, f"{owner}/images/{image.name}") for image in images],
        }


def use_businesses(client: RemoteDataClient, storage: Optional[FileStorage] = None) -> BusinessesHook:
    return BusinessesHook(client, storage)


def use_shubh_chintak(
    client: RemoteDataClient,
    limit: Optional[int] = None,
    storage: Optional[FileStorage] = None,
) -> QueryHook:
    def transform(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not any(row.get("cover_image_name") for row in rows):
            return rows
        resolver = _storage_of(client, storage)
        return [
            {
                **row,
                "cover_image_url": resolver.get_public_url(
                    SHUBH_CHINTAK_BUCKET, f"magzine-cover/{row['cover_image_name']}.png"
                ),
            }
            if row.get("cover_image_name")
            else row
            for row in rows
        ]

    spec = EntitySpec(table=SHUBH_CHINTAK.table, order=SHUBH_CHINTAK.order, limit=limit)
    return QueryHook(client, spec, ALL_ROWS, transform=transform)


# ---------------------------------------------------------------------------
# application forms


@dataclass(frozen=True)
class UploadedImage:
    filename: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def extension(self) -> str:
        _stem, dot, ext = self.filename.rpartition(".")
        return ext.lower() if dot and ext else "jpg"


@dataclass(frozen=True)
class EventApplicationForm:
    user_id: str
    name: str
    description: str
    start_time: str
    duration: str
    organizers: Sequence[str] = field(default_factory=tuple)
    image: Optional[UploadedImage] = None


@dataclass(frozen=True)
class DonationApplicationForm:
    user_id: str
    amount: float
    description: str
    cause: str
    open_till: str
    image: Optional[UploadedImage] = None


def pg_array_literal(values: Sequence[str]) -> str:
    """``["a", "b"]`` -> ``{a,b}``, the text form Postgres accepts for arrays."""
    return "{" + ",".join(values) + "}"


def _require(form: Any, *names: str) -> None:
    for name in names:
        value = getattr(form, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{name} is required", field=name)


class ApplicationSubmission:
    """
    Member-side submission of event and donation applications.

    The application row goes in first; an attached image is then stored as
    ``<id>.<ext>`` and its path patched onto the row.
    """

    def __init__(self, client: RemoteDataClient, storage: Optional[FileStorage] = None):
        self.client = client
        self.storage = storage
        self.loading = False
        self.error: Optional[Exception] = None

    async def submit_event(self, form: EventApplicationForm) -> MutationResult:
        try:
            _require(form, "user_id", "name", "description", "start_time", "duration")
        except ValidationError as exc:
            return self._failed(exc)
        payload = {
            "user_id": form.user_id,
            "name": form.name,
            "description": form.description,
            "start_at": form.start_time,
            "duration": form.duration,
            "organizers": pg_array_literal(form.organizers),
        }
        return await self._submit("event_applications", payload, form.image)

    async def submit_donation(self, form: DonationApplicationForm) -> MutationResult:
        try:
            _require(form, "user_id", "amount", "description", "cause", "open_till")
            if form.amount <= 0:
                raise ValidationError("amount must be positive", field="amount")
        except ValidationError as exc:
            return self._failed(exc)
        payload = {
            "user_id": form.user_id,
            "amount": form.amount,
            "description": form.description,
            "cause": form.cause,
            "open_till": form.open_till,
        }
        return await self._submit("donation_applications", payload, form.image)

    async def _submit(self, table: str, payload: Dict[str, Any], image: Optional[UploadedImage]) -> MutationResult:
        self.loading = True
        self.error = None
        try:
            rows = await self.client.insert(table, [payload])
            row = rows[0] if rows else dict(payload)
            if image is not None and row.get("id") is not None:
                storage = _storage_of(self.client, self.storage)
                path = await storage.upload(
                    APPLICATION_PICTURES_BUCKET,
                    f"{row['id']}.{image.extension}",
                    image.data,
                    content_type=image.content_type,
                )
                await self.client.update(table, {"image_url": path}, "id", row["id"])
                row = {**row, "image_url": path}
        except AdminDataError as exc:
            logger.warning("Failed to submit %s: %s", table, exc)
            return self._failed(exc)
        finally:
            self.loading = False
        return MutationResult(success=True, data=row)

    def _failed(self, exc: Exception) -> MutationResult:
        self.error = exc
        return MutationResult(success=False, error=exc)

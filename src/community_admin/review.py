from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import AdminDataError, PromotionError, RecordNotFoundError, ValidationError
from .hooks import MutationResult
from .query import EqualsFilter, Query
from .remote import RemoteDataClient

logger = logging.getLogger(__name__)


class ApplicationType(str, Enum):
    EVENT = "event"
    DONATION = "donation"
    EDUCATION_LOAN = "education_loan"
    BUSINESS_LOAN = "business_loan"
    GIRLS_HOSTEL = "girls_hostel"
    MULUND_HOSTEL = "mulund_hostel"
    VATSALYADHAM = "vatsalyadham"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


SOURCE_TABLES: Dict[ApplicationType, str] = {
    ApplicationType.EVENT: "event_applications",
    ApplicationType.DONATION: "donation_applications",
    ApplicationType.EDUCATION_LOAN: "education_loan_applications",
    ApplicationType.BUSINESS_LOAN: "business_loan_applications",
    ApplicationType.GIRLS_HOSTEL: "girls_hostel_form",
    ApplicationType.MULUND_HOSTEL: "mulund_hostel_form",
    ApplicationType.VATSALYADHAM: "vatsalyadham_form",
}

# Only these types graduate into public tables on approval.
PRODUCTION_TABLES: Dict[ApplicationType, str] = {
    ApplicationType.EVENT: "events",
    ApplicationType.DONATION: "donations",
}

SEARCH_FIELDS: Dict[ApplicationType, tuple] = {
    ApplicationType.EVENT: ("name",),
    ApplicationType.DONATION: ("cause",),
    ApplicationType.EDUCATION_LOAN: ("full_name", "institution_name"),
    ApplicationType.BUSINESS_LOAN: ("business_name", "nature_of_business"),
    ApplicationType.GIRLS_HOSTEL: ("applicant_name", "institution"),
    ApplicationType.MULUND_HOSTEL: ("applicant_name", "institution"),
    ApplicationType.VATSALYADHAM: ("applicant_name",),
}

_TRANSITIONS = {
    ApplicationStatus.PENDING: {ApplicationStatus.APPROVED, ApplicationStatus.REJECTED},
    ApplicationStatus.APPROVED: set(),
    ApplicationStatus.REJECTED: set(),
}


def parse_application_type(value: Union[str, ApplicationType]) -> ApplicationType:
    try:
        return ApplicationType(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown application type: {value!r}", field="type") from exc


def parse_status(value: Union[str, ApplicationStatus]) -> ApplicationStatus:
    try:
        return ApplicationStatus(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown application status: {value!r}", field="status") from exc


def row_status(row: Mapping[str, Any]) -> ApplicationStatus:
    """Rows written before the status column existed count as pending."""
    return parse_status(row.get("status") or ApplicationStatus.PENDING)


def can_transition(current: Union[str, ApplicationStatus], target: Union[str, ApplicationStatus]) -> bool:
    return parse_status(target) in _TRANSITIONS[parse_status(current)]


def _is_copy_of(existing: Mapping[str, Any], payload: Mapping[str, Any]) -> bool:
    return all(key in existing and existing[key] == value for key, value in payload.items())


def matches_search(row: Mapping[str, Any], fields: tuple, term: str) -> bool:
    needle = (term or "").strip().lower()
    if not needle:
        return True
    return any(needle in str(row.get(name) or "").lower() for name in fields)


class ApplicationReviewService:
    """
    Moves submitted applications through ``pending -> approved | rejected``.

    Approving an event or donation promotes it: the row is read, its ``status``
    dropped, the copy inserted into the production table and only then the
    application deleted. The two writes are not transactional. Each step is
    logged so an interrupted promotion can be found, and re-running the
    approval resumes it without inserting a second copy. A production row only
    counts as the earlier copy when every promoted column matches.
    """

    def __init__(self, client: RemoteDataClient):
        self.client = client

    async def set_status(
        self,
        application_type: Union[str, ApplicationType],
        record_id: Any,
        status: Union[str, ApplicationStatus],
    ) -> MutationResult:
        try:
            app_type = parse_application_type(application_type)
            target = parse_status(status)
            if target is ApplicationStatus.PENDING:
                raise ValidationError("Applications cannot be moved back to pending", field="status")
            if app_type in PRODUCTION_TABLES and target is ApplicationStatus.APPROVED:
                data = await self._promote(app_type, record_id)
            else:
                data = await self._update_status(app_type, record_id, target)
        except AdminDataError as exc:
            logger.warning("Failed to set %s application %s to %s: %s", application_type, record_id, status, exc)
            return MutationResult(success=False, error=exc)
        return MutationResult(success=True, data=data)

    async def list_applications(
        self,
        application_type: Union[str, ApplicationType],
        search: str = "",
    ) -> List[Dict[str, Any]]:
        app_type = parse_application_type(application_type)
        result = await self.client.select(Query(table=SOURCE_TABLES[app_type]))
        fields = SEARCH_FIELDS[app_type]
        return [row for row in result.rows if matches_search(row, fields, search)]

    async def list_all(self, search: str = "") -> Dict[ApplicationType, List[Dict[str, Any]]]:
        types = list(ApplicationType)
        lists = await asyncio.gather(*(self.list_applications(app_type, search) for app_type in types))
        return dict(zip(types, lists))

    async def _update_status(
        self,
        app_type: ApplicationType,
        record_id: Any,
        target: ApplicationStatus,
    ) -> Dict[str, Any]:
        table = SOURCE_TABLES[app_type]
        row = await self.client.select_one(table, "id", record_id)
        self._ensure_transition(row, target, table, record_id)
        updated = await self.client.update(table, {"status": target.value}, "id", record_id)
        if not updated:
            raise RecordNotFoundError(table, "id", record_id)
        return updated[0]

    async def _promote(self, app_type: ApplicationType, record_id: Any) -> Dict[str, Any]:
        source = SOURCE_TABLES[app_type]
        target = PRODUCTION_TABLES[app_type]
        logger.info("Promotion started: %s id=%s -> %s", source, record_id, target)

        try:
            row = await self.client.select_one(source, "id", record_id)
        except AdminDataError as exc:
            raise PromotionError(f"Could not read {source} id={record_id}: {exc}", stage="read") from exc
        self._ensure_transition(row, ApplicationStatus.APPROVED, source, record_id)

        payload = {key: value for key, value in row.items() if key != "status"}
        try:
            promoted = await self._insert_once(target, payload)
        except AdminDataError as exc:
            raise PromotionError(f"Could not insert into {target}: {exc}", stage="insert") from exc
        logger.info("Promotion inserted: %s id=%s into %s", source, record_id, target)

        try:
            await self.client.delete(source, "id", record_id)
        except AdminDataError as exc:
            logger.error(
                "Partial promotion: %s id=%s copied to %s but not deleted: %s",
                source,
                record_id,
                target,
                exc,
            )
            raise PromotionError(f"Could not delete {source} id={record_id}: {exc}", stage="delete") from exc
        logger.info("Promotion completed: %s id=%s", source, record_id)
        return promoted

    async def _insert_once(self, table: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        record_id = payload.get("id")
        if record_id is not None:
            existing = await self.client.select(
                Query(table=table).where(EqualsFilter("id", record_id)).with_limit(1)
            )
            if existing.rows and _is_copy_of(existing.rows[0], payload):
                logger.info("Promotion resumed: %s id=%s already inserted", table, record_id)
                return existing.rows[0]
            if existing.rows:
                # unrelated row under the same id; the insert below fails on it
                logger.warning("Promotion target %s id=%s holds a different row", table, record_id)
        inserted = await self.client.insert(table, [payload])
        return inserted[0] if inserted else payload

    @staticmethod
    def _ensure_transition(row: Mapping[str, Any], target: ApplicationStatus, table: str, record_id: Any) -> None:
        current = row_status(row)
        if not can_transition(current, target):
            raise ValidationError(
                f"{table} id={record_id} is already {current.value}",
                field="status",
            )


class ApplicationsBoard:
    """Every application list on one screen, with a shared error slot."""

    def __init__(self, service: ApplicationReviewService, search: str = ""):
        self.service = service
        self.search = search
        self.applications: Dict[ApplicationType, List[Dict[str, Any]]] = {
            app_type: [] for app_type in ApplicationType
        }
        self.loading = False
        self.error: Optional[Exception] = None

    async def refresh(self) -> Dict[ApplicationType, List[Dict[str, Any]]]:
        self.loading = True
        try:
            self.applications = await self.service.list_all(self.search)
            self.error = None
        except AdminDataError as exc:
            logger.warning("Failed to load applications: %s", exc)
            self.error = exc
        finally:
            self.loading = False
        return self.applications

    async def set_search(self, search: str) -> Dict[ApplicationType, List[Dict[str, Any]]]:
        self.search = search
        return await self.refresh()

    async def update_status(
        self,
        application_type: Union[str, ApplicationType],
        record_id: Any,
        status: Union[str, ApplicationStatus],
    ) -> MutationResult:
        result = await self.service.set_status(application_type, record_id, status)
        if result.success:
            await self.refresh()
        else:
            self.error = result.error
        return result

"""FastAPI server that exposes the community admin data layer."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field

from .aggregation import CommitteeImage, search_committees
from .configuration import AdminConfig
from .dashboard import DashboardStatsService
from .entities import use_committee_images, use_committees, use_families, use_profiles
from .errors import AdminDataError, PromotionError, RecordNotFoundError, ValidationError
from .remote import RemoteDataClient, build_client
from .review import ApplicationReviewService, ApplicationStatus, ApplicationType
from .storage_config import StorageConfig, load_storage_config

logger = logging.getLogger(__name__)

# Query parameters that are not member filters.
_RESERVED_MEMBER_PARAMS = {"page", "page_size", "search", "date_from", "date_to"}


class ListResponse(BaseModel):
    data: List[Dict[str, Any]]
    count: int
    page: int = 1
    total_pages: int = 0


class StatusUpdateRequest(BaseModel):
    status: ApplicationStatus


class StatusUpdateResponse(BaseModel):
    success: bool
    data: Optional[Dict[str, Any]] = None


class ApplicationsResponse(BaseModel):
    type: ApplicationType
    data: List[Dict[str, Any]] = Field(default_factory=list)


def error_status(exc: Exception) -> int:
    if isinstance(exc, PromotionError) and isinstance(exc.__cause__, RecordNotFoundError):
        return 404
    if isinstance(exc, RecordNotFoundError):
        return 404
    if isinstance(exc, ValidationError):
        return 422
    return 502


def _raise_for(exc: Exception) -> None:
    raise HTTPException(status_code=error_status(exc), detail=str(exc)) from exc


def create_app(
    client: Optional[RemoteDataClient] = None,
    config: Optional[AdminConfig] = None,
    storage_config: Optional[StorageConfig] = None,
) -> FastAPI:
    """
    Build the API around one ``RemoteDataClient``.

    Without an explicit client one is built from the environment on the first
    request, so importing the module never needs database settings.
    """

    app = FastAPI(title="Community Admin API", version="0.1.0")
    app.state.client = client
    app.state.config = config or AdminConfig.from_mapping(None)
    app.state.storage_config = storage_config or load_storage_config(None)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _mount_local_media_directory(app, app.state.storage_config)

    def get_client() -> RemoteDataClient:
        if app.state.client is None:
            try:
                app.state.client = build_client(app.state.storage_config)
            except ValueError as exc:
                raise HTTPException(status_code=500, detail=str(exc)) from exc
        return app.state.client

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/dashboard/stats")
    async def dashboard_stats() -> Dict[str, Any]:
        service = DashboardStatsService(get_client(), app.state.config)
        try:
            stats = await service.build()
        except AdminDataError as exc:
            _raise_for(exc)
        return stats.as_dict()

    @app.get("/members", response_model=ListResponse)
    async def list_members(
        request: Request,
        page: int = Query(1, ge=1),
        page_size: Optional[int] = Query(None, ge=1, le=200),
        search: str = "",
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> ListResponse:
        filters: Dict[str, Any] = {
            key: value for key, value in request.query_params.items() if key not in _RESERVED_MEMBER_PARAMS
        }
        if date_from or date_to:
            filters["dateRange"] = {"from": date_from, "to": date_to}
        size = page_size or app.state.config.pagination.members_page_size
        hook = use_profiles(get_client(), page=page, page_size=size, search=search, filters=filters)
        state = await hook.refetch()
        if state.error is not None:
            _raise_for(state.error)
        return ListResponse(data=state.data or [], count=state.count, page=page, total_pages=hook.total_pages)

    @app.get("/families", response_model=ListResponse)
    async def list_families(
        page: int = Query(1, ge=1),
        page_size: Optional[int] = Query(None, ge=1, le=200),
        search: str = "",
    ) -> ListResponse:
        hook = use_families(get_client(), page=page, page_size=page_size, search=search, config=app.state.config)
        state = await hook.refetch()
        if state.error is not None:
            _raise_for(state.error)
        return ListResponse(
            data=[family.as_dict() for family in state.data or []],
            count=state.count,
            page=page,
            total_pages=hook.total_pages,
        )

    @app.get("/committees", response_model=ListResponse)
    async def list_committees(search: str = "") -> ListResponse:
        client = get_client()
        committees = use_committees(client)
        state = await committees.refetch()
        if state.error is not None:
            _raise_for(state.error)

        images: List[CommitteeImage] = []
        if client.storage is not None:
            image_state = await use_committee_images(client).refetch()
            if image_state.error is not None:
                logger.warning("Committee pictures unavailable: %s", image_state.error)
            else:
                images = image_state.data or []

        placeholders = app.state.config.placeholders
        grouped = committees.grouped(images, placeholders.committee_image, placeholders.person_image)
        grouped = search_committees(grouped, search)
        return ListResponse(data=[committee.as_dict() for committee in grouped], count=len(grouped))

    @app.get("/applications/{application_type}", response_model=ApplicationsResponse)
    async def list_applications(application_type: ApplicationType, search: str = "") -> ApplicationsResponse:
        service = ApplicationReviewService(get_client())
        try:
            rows = await service.list_applications(application_type, search)
        except AdminDataError as exc:
            _raise_for(exc)
        return ApplicationsResponse(type=application_type, data=rows)

    @app.post("/applications/{application_type}/{record_id}/status", response_model=StatusUpdateResponse)
    async def update_application_status(
        application_type: ApplicationType,
        record_id: str,
        request: StatusUpdateRequest,
    ) -> StatusUpdateResponse:
        service = ApplicationReviewService(get_client())
        result = await service.set_status(application_type, _coerce_id(record_id), request.status)
        if not result.success:
            _raise_for(result.error)
        return StatusUpdateResponse(success=True, data=result.data)

    return app


def _coerce_id(value: str) -> Any:
    return int(value) if value.isdigit() else value


def _mount_local_media_directory(target_app: FastAPI, storage_config: StorageConfig) -> None:
    """Expose uploaded pictures when local_fs storage is enabled."""
    media_cfg = storage_config.media
    if media_cfg.provider != "local_fs" or not media_cfg.public_base_url.startswith("/"):
        return

    media_root = Path(media_cfg.local_directory).expanduser()
    media_root.mkdir(parents=True, exist_ok=True)
    mount_path = media_cfg.public_base_url.rstrip("/") or "/media"
    already_mounted = any(getattr(route, "path", None) == mount_path for route in target_app.routes)
    if not already_mounted:
        target_app.mount(mount_path, StaticFiles(directory=str(media_root)), name="media")


app = create_app()

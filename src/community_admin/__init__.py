"""
Data layer for the community admin dashboard.

Paginated and searchable entity hooks over a hosted Postgres/Supabase store,
the application review workflow and the dashboard overview figures.
"""

from .configuration import AdminConfig  # noqa: F401
from .errors import (  # noqa: F401
    AdminDataError,
    PromotionError,
    RecordNotFoundError,
    RemoteDataError,
    UnknownTableError,
    ValidationError,
)
from .hooks import EntitySpec, MutationResult, PaginatedList, QueryHook, QueryParams, QueryState  # noqa: F401
from .remote import (  # noqa: F401
    RemoteDataClient,
    SQLRemoteDataClient,
    SupabaseRemoteDataClient,
    build_client,
)
from .review import ApplicationReviewService, ApplicationsBoard, ApplicationStatus, ApplicationType  # noqa: F401
from .storage_config import StorageConfig, load_storage_config  # noqa: F401

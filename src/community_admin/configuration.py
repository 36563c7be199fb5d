# behaviour settings for the community admin data layer

import os
from typing import Any, Mapping, Optional

from pydantic import BaseModel

from .storage_config import _env_int

# ========== 1. Pagination ==========

class PaginationConfig(BaseModel):
    members_page_size: int = 20
    """Rows per page on the members table"""

    doctors_page_size: int = 9
    """Doctor cards per page (3x3 grid)"""

    families_page_size: int = 12
    """Family cards per page"""


# ========== 2. Search ==========

class SearchConfig(BaseModel):
    debounce_ms: int = 500
    """Quiet period after the last keystroke before a search term is committed"""

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000


# ========== 3. Dashboard ==========

class DashboardConfig(BaseModel):
    recent_applications_limit: int = 5
    """How many recent event applications the overview lists"""


# ========== 4. Placeholder images ==========

class PlaceholderConfig(BaseModel):
    member_image: str = "https://images.unsplash.com/photo-1600880292203-757bb62b4baf?q=80&w=300"
    family_cover_image: str = "https://images.unsplash.com/photo-1529156069898-49953e39b3ac?q=80&w=2000"
    committee_image: str = "https://images.unsplash.com/photo-1600880292203-757bb62b4baf?q=80&w=300"
    person_image: str = (
        "https://t3.ftcdn.net/jpg/05/16/27/58/360_F_516275801_f3Fsp17x6HQK0xQgDQEELoTuERO4SsWV.jpg"
    )
    """Used for committee members and birthdays without a profile picture"""


# ========== 5. Combined ==========

class AdminConfig(BaseModel):
    """Configuration for the community admin dashboard."""

    pagination: PaginationConfig = PaginationConfig()
    search: SearchConfig = SearchConfig()
    dashboard: DashboardConfig = DashboardConfig()
    placeholders: PlaceholderConfig = PlaceholderConfig()

    @classmethod
    def from_mapping(cls, configurable: Optional[Mapping[str, Any]] = None) -> "AdminConfig":
        """
        Build from a ``configurable`` mapping, letting environment variables win.

        Each section reads ``<SECTION>_<FIELD>`` from the environment, e.g.
        ``SEARCH_DEBOUNCE_MS`` or ``PAGINATION_MEMBERS_PAGE_SIZE``.
        """
        configurable = configurable or {}
        sections: dict[str, Any] = {}
        for section_name, field_info in cls.model_fields.items():
            section_cls = field_info.annotation
            overrides = dict(configurable.get(section_name, {}))
            for field_name, sub_field in section_cls.model_fields.items():
                env_name = f"{section_name}_{field_name}".upper()
                if sub_field.annotation is int:
                    default = overrides.get(field_name, sub_field.default)
                    overrides[field_name] = _env_int(env_name, default)
                elif os.environ.get(env_name) is not None:
                    overrides[field_name] = os.environ[env_name]
            sections[section_name] = section_cls(**overrides)
        return cls(**sections)

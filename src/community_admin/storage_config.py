"""
Backend wiring configuration: which data store and which file storage to use.
"""

from __future__ import annotations

import os
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel


class DatabaseConfig(BaseModel):
    backend: Literal["sql", "supabase"] = "sql"
    url: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    echo: bool = False


class MediaStorageConfig(BaseModel):
    provider: Literal["local_fs", "supabase", "none"] = "none"
    local_directory: str = os.path.expanduser("~/.community_admin/media")
    public_base_url: str = "/media"


class StorageConfig(BaseModel):
    database: DatabaseConfig = DatabaseConfig()
    media: MediaStorageConfig = MediaStorageConfig()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_storage_config(configurable: Optional[Mapping[str, Any]]) -> StorageConfig:
    cfg = StorageConfig()
    storage = (configurable or {}).get("storage", {})

    db_cfg = storage.get("database", {})
    cfg.database = DatabaseConfig(
        backend=os.getenv("DATA_BACKEND", db_cfg.get("backend", cfg.database.backend)),
        url=os.getenv("DATABASE_URL", db_cfg.get("url", cfg.database.url)),
        supabase_url=os.getenv("SUPABASE_URL", db_cfg.get("supabase_url", cfg.database.supabase_url)),
        supabase_key=os.getenv("SUPABASE_KEY", db_cfg.get("supabase_key", cfg.database.supabase_key)),
        echo=_env_bool("SQL_ECHO", db_cfg.get("echo", cfg.database.echo)),
    )

    media_cfg = storage.get("media", {})
    cfg.media = MediaStorageConfig(
        provider=os.getenv("MEDIA_PROVIDER", media_cfg.get("provider", cfg.media.provider)),
        local_directory=os.getenv(
            "MEDIA_LOCAL_DIRECTORY",
            media_cfg.get("local_directory", cfg.media.local_directory),
        ),
        public_base_url=os.getenv(
            "MEDIA_PUBLIC_BASE_URL",
            media_cfg.get("public_base_url", cfg.media.public_base_url),
        ),
    )

    return cfg

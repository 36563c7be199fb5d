from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import mimetypes
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .errors import RemoteDataError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileEntry:
    name: str
    size: int = 0
    content_type: str = "application/octet-stream"
    created_at: Optional[str] = None


class FileStorage(Protocol):
    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
        upsert: bool = False,
    ) -> str:
        ...

    def get_public_url(self, bucket: str, path: str) -> str:
        ...

    async def list(self, bucket: str, prefix: str = "") -> List[FileEntry]:
        ...

    async def remove(self, bucket: str, paths: Sequence[str]) -> None:
        ...


class LocalFileStorage:
    """
    Buckets backed by sub-directories of ``directory``.

    Public URLs are ``<public_base_url>/<bucket>/<path>`` so a web server (or the
    FastAPI static mount) can serve the files directly.
    """

    def __init__(self, directory: str, public_base_url: str = "/media"):
        self.base_dir = Path(directory).expanduser()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
        upsert: bool = False,
    ) -> str:
        return await asyncio.to_thread(self._write, bucket, path, data, upsert)

    def get_public_url(self, bucket: str, path: str) -> str:
        key = "/".join(self._split_path(path))
        return f"{self.public_base_url}/{sanitize_storage_key(bucket)}/{key}"

    async def list(self, bucket: str, prefix: str = "") -> List[FileEntry]:
        return await asyncio.to_thread(self._list, bucket, prefix)

    async def remove(self, bucket: str, paths: Sequence[str]) -> None:
        await asyncio.to_thread(self._remove, bucket, list(paths))

    def _bucket_dir(self, bucket: str) -> Path:
        return self.base_dir / sanitize_storage_key(bucket)

    def _resolve(self, bucket: str, path: str) -> Path:
        return self._bucket_dir(bucket).joinpath(*self._split_path(path))

    def _write(self, bucket: str, path: str, data: bytes, upsert: bool) -> str:
        target = self._resolve(bucket, path)
        if target.exists() and not upsert:
            raise RemoteDataError(f"The resource already exists: {bucket}/{path}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise RemoteDataError(f"Failed to write {bucket}/{path}: {exc}") from exc
        return "/".join(self._split_path(path))

    def _list(self, bucket: str, prefix: str) -> List[FileEntry]:
        folder = self._bucket_dir(bucket)
        if prefix.strip("/"):
            folder = folder.joinpath(*self._split_path(prefix))
        if not folder.is_dir():
            return []
        entries: List[FileEntry] = []
        for item in sorted(folder.iterdir(), key=lambda p: p.name):
            if not item.is_file():
                continue
            stat = item.stat()
            entries.append(
                FileEntry(
                    name=item.name,
                    size=stat.st_size,
                    content_type=mimetypes.guess_type(item.name)[0] or "application/octet-stream",
                    created_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
                )
            )
        return entries

    def _remove(self, bucket: str, paths: List[str]) -> None:
        for path in paths:
            target = self._resolve(bucket, path)
            try:
                target.unlink(missing_ok=True)
            except OSError as exc:
                raise RemoteDataError(f"Failed to delete {bucket}/{path}: {exc}") from exc

    @staticmethod
    def _split_path(path: str) -> List[str]:
        parts = [part for part in path.replace("\\", "/").split("/") if part]
        if not parts or any(part in {".", ".."} for part in parts):
            raise ValidationError(f"Invalid storage path: {path!r}", field="path")
        return [sanitize_storage_key(part) for part in parts]


class SupabaseFileStorage:
    """Storage buckets of a hosted Supabase project (``supabase.Client``)."""

    def __init__(self, client: Any):
        self.client = client

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
        upsert: bool = False,
    ) -> str:
        options = {"upsert": "true" if upsert else "false"}
        if content_type:
            options["content-type"] = content_type

        def _upload() -> str:
            self.client.storage.from_(bucket).upload(path, data, file_options=options)
            return path

        return await self._call(_upload, f"upload {bucket}/{path}")

    def get_public_url(self, bucket: str, path: str) -> str:
        return self.client.storage.from_(bucket).get_public_url(path)

    async def list(self, bucket: str, prefix: str = "") -> List[FileEntry]:
        def _list() -> List[Dict[str, Any]]:
            if prefix:
                return self.client.storage.from_(bucket).list(prefix)
            return self.client.storage.from_(bucket).list()

        raw_entries = await self._call(_list, f"list {bucket}/{prefix}")
        return [self._to_entry(item) for item in raw_entries or [] if item.get("name")]

    async def remove(self, bucket: str, paths: Sequence[str]) -> None:
        await self._call(lambda: self.client.storage.from_(bucket).remove(list(paths)), f"remove from {bucket}")

    @staticmethod
    def _to_entry(item: Dict[str, Any]) -> FileEntry:
        metadata = item.get("metadata") or {}
        return FileEntry(
            name=item["name"],
            size=int(metadata.get("size") or 0),
            content_type=metadata.get("mimetype") or "image/jpeg",
            created_at=item.get("created_at"),
        )

    @staticmethod
    async def _call(func, description: str):
        try:
            return await asyncio.to_thread(func)
        except Exception as exc:
            logger.warning("Storage call failed (%s): %s", description, exc)
            raise RemoteDataError(f"Storage call failed ({description}): {exc}") from exc


def sanitize_storage_key(value: str) -> str:
    sanitized = "".join(ch for ch in value if ch.isalnum() or ch in {"-", "_", "."})
    return sanitized or "file"


def decode_data_url(data_url: str) -> tuple[bytes, str]:
    """
    Split a ``data:<mime>;base64,<payload>`` URL into raw bytes and mime type.
    """

    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        raise ValidationError("Expected a base64 data URL", field="data_url")
    content_type = header[len("data:"):].split(";", 1)[0] or "application/octet-stream"
    try:
        return base64.b64decode(payload, validate=True), content_type
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Data URL payload is not valid base64", field="data_url") from exc


async def upload_data_url(storage: FileStorage, bucket: str, data_url: str, file_name: str) -> str:
    data, content_type = decode_data_url(data_url)
    path = await storage.upload(bucket, file_name, data, content_type=content_type)
    return storage.get_public_url(bucket, path)

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from functools import lru_cache
from pathlib import PurePosixPath
from urllib.parse import quote

import httpx

from citymaid.core.config import get_settings

logger = logging.getLogger(__name__)

RECEIPT_CONTENT_TYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
        "image/gif",
        "application/pdf",
    }
)
PHOTO_CONTENT_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/webp"})
EXTENSION_BY_CONTENT_TYPE = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "application/pdf": "pdf",
}


class StorageError(Exception):
    """Base object storage error."""


class StorageUnavailableError(StorageError):
    """Raised when object storage is not configured or unreachable."""


class UploadValidationError(StorageError):
    """Raised when an upload is rejected before anything is written."""


@dataclass(slots=True)
class StoredObject:
    bucket: str
    path: str
    public_url: str
    size: int
    content_type: str


def validate_upload(
    *,
    filename: str | None,
    content_type: str | None,
    size: int,
    allowed_types: frozenset[str],
    max_bytes: int,
) -> str:
    """Reject an upload before any storage write; returns the normalized content type."""
    if not filename or not filename.strip():
        raise UploadValidationError("file name is empty")
    if size <= 0:
        raise UploadValidationError("file is empty")
    normalized_type = (content_type or "").split(";", maxsplit=1)[0].strip().lower()
    if normalized_type not in allowed_types:
        allowed = ", ".join(sorted(allowed_types))
        raise UploadValidationError(f"unsupported file type {normalized_type or 'unknown'}; allowed: {allowed}")
    if size > max_bytes:
        raise UploadValidationError(f"file too large; maximum size is {max_bytes // (1024 * 1024)}MB")
    return normalized_type


async def read_upload(file, *, max_bytes: int) -> bytes:
    # Buffers at most max_bytes + 1 bytes; validate_upload rejects anything past the limit.
    return await file.read(max_bytes + 1)


async def discard_upload(storage, stored: StoredObject) -> None:
    try:
        await storage.remove(bucket=stored.bucket, paths=[stored.path])
    except StorageError:
        logger.warning("orphaned upload left in storage bucket=%s path=%s", stored.bucket, stored.path, exc_info=True)
    else:
        logger.info("removed orphaned upload bucket=%s path=%s", stored.bucket, stored.path)


def build_object_name(
    *,
    prefix: str,
    filename: str | None,
    content_type: str,
    now_ms: int | None = None,
    token: str | None = None,
) -> str:
    suffix = PurePosixPath(filename or "").suffix.lstrip(".").lower()
    if not suffix or not suffix.isalnum():
        suffix = EXTENSION_BY_CONTENT_TYPE.get(content_type.lower(), "bin")
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    random_part = token if token is not None else secrets.token_hex(4)
    return f"{prefix}-{stamp}-{random_part}.{suffix}"


class SupabaseStorage:
    def __init__(
        self,
        supabase_url: str | None,
        service_role_key: str | None,
        timeout_seconds: float,
        public_base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.supabase_url = supabase_url.rstrip("/") if supabase_url else None
        self.service_role_key = service_role_key
        self.timeout_seconds = timeout_seconds
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._transport = transport

    def public_url(self, *, bucket: str, path: str) -> str:
        base = self.public_base_url or f"{self._require_url()}/storage/v1/object/public"
        return f"{base}/{quote(bucket)}/{quote(path)}"

    async def upload(self, *, bucket: str, path: str, content: bytes, content_type: str) -> StoredObject:
        url = f"{self._require_url()}/storage/v1/object/{quote(bucket)}/{quote(path)}"
        headers = {
            **self._auth_headers(),
            "Content-Type": content_type,
            "Cache-Control": "max-age=3600",
            "x-upsert": "false",
        }
        try:
            async with self._client() as client:
                response = await client.post(url, content=content, headers=headers)
        except httpx.HTTPError as exc:  # pragma: no cover - network dependent
            raise StorageUnavailableError("object storage unavailable") from exc

        if response.status_code >= 400:
            logger.warning(
                "storage upload failed bucket=%s path=%s status=%s body=%s",
                bucket,
                path,
                response.status_code,
                response.text[:200],
            )
            raise StorageError(f"storage upload failed with status {response.status_code}")

        logger.info("storage upload bucket=%s path=%s size=%s", bucket, path, len(content))
        return StoredObject(
            bucket=bucket,
            path=path,
            public_url=self.public_url(bucket=bucket, path=path),
            size=len(content),
            content_type=content_type,
        )

    async def remove(self, *, bucket: str, paths: list[str]) -> None:
        if not paths:
            return
        url = f"{self._require_url()}/storage/v1/object/{quote(bucket)}"
        try:
            async with self._client() as client:
                response = await client.request("DELETE", url, json={"prefixes": paths}, headers=self._auth_headers())
        except httpx.HTTPError as exc:  # pragma: no cover - network dependent
            raise StorageUnavailableError("object storage unavailable") from exc
        if response.status_code >= 400:
            raise StorageError(f"storage delete failed with status {response.status_code}")

    async def save_upload(
        self,
        *,
        bucket: str,
        prefix: str,
        filename: str | None,
        content_type: str | None,
        content: bytes,
        allowed_types: frozenset[str],
        max_bytes: int,
    ) -> StoredObject:
        normalized_type = validate_upload(
            filename=filename,
            content_type=content_type,
            size=len(content),
            allowed_types=allowed_types,
            max_bytes=max_bytes,
        )
        path = build_object_name(prefix=prefix, filename=filename, content_type=normalized_type)
        return await self.upload(bucket=bucket, path=path, content=content, content_type=normalized_type)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)

    def _auth_headers(self) -> dict[str, str]:
        if not self.service_role_key:
            raise StorageUnavailableError("CM_SUPABASE_SERVICE_ROLE_KEY is required")
        return {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
        }

    def _require_url(self) -> str:
        if not self.supabase_url:
            raise StorageUnavailableError("CM_SUPABASE_URL is required")
        return self.supabase_url


@lru_cache
def get_storage() -> SupabaseStorage:
    settings = get_settings()
    return SupabaseStorage(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        timeout_seconds=settings.storage_timeout_seconds,
        public_base_url=settings.storage_public_base_url,
    )

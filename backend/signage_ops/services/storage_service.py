from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import quote

import httpx

from ..errors import NotFoundError, ServiceUnavailableError, TransportError
from ..stores import StorageObject

logger = logging.getLogger(__name__)


class StorageServiceError(TransportError):
    """Raised when Supabase Storage returns an error."""


class StorageObjectNotFoundError(StorageServiceError, NotFoundError):
    """Raised when Supabase Storage reports a bucket or object is missing."""


def _error_fields(response: httpx.Response) -> tuple[str | None, str | None]:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        error = payload.get("error")
        message = payload.get("message")
        return (
            str(error) if error is not None else None,
            str(message) if message is not None else None,
        )
    return None, None


def _is_not_found(response: httpx.Response) -> bool:
    if response.status_code == 404:
        return True
    error, message = _error_fields(response)
    # Storage answers 400 with a not_found body for missing buckets/objects.
    return response.status_code == 400 and (
        str(error or "").lower() in {"not_found", "bucket not found"}
        or "not found" in str(message or "").lower()
    )


class StorageService:
    def __init__(
        self,
        *,
        supabase_url: str | None,
        service_role_key: str | None,
        timeout: float = 10.0,
    ) -> None:
        self._supabase_url = (supabase_url or "").rstrip("/") or None
        self._service_role_key = service_role_key
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self._supabase_url and self._service_role_key)

    def _base_url(self) -> str:
        if not self._supabase_url:
            raise StorageServiceError("Supabase Storage is not configured")
        return self._supabase_url

    def _headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        service_role_key = self._service_role_key
        if not service_role_key:
            raise StorageServiceError("Supabase Storage is not configured")
        headers = {
            "apikey": service_role_key,
            "Authorization": f"Bearer {service_role_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        with httpx.Client(timeout=self._timeout) as client:
            try:
                return client.request(method, url, **kwargs)
            except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
                raise ServiceUnavailableError(
                    f"Supabase Storage unreachable at {self._supabase_url}"
                ) from exc
            except httpx.HTTPError as exc:  # pragma: no cover - network failure path
                raise StorageServiceError("Failed to call Supabase Storage") from exc

    def public_url(self, bucket: str, name: str) -> str:
        if not name:
            raise StorageServiceError("storage path is required")
        normalized_path = name.lstrip("/")
        return (
            f"{self._base_url()}/storage/v1/object/public/{bucket}/"
            f"{quote(normalized_path, safe='/')}"
        )

    def list_objects(self, bucket: str, *, limit: int = 1000) -> list[StorageObject]:
        request_url = f"{self._base_url()}/storage/v1/object/list/{bucket}"
        response = self._request(
            "POST",
            request_url,
            json={
                "prefix": "",
                "limit": int(limit),
                "offset": 0,
                "sortBy": {"column": "name", "order": "asc"},
            },
            headers=self._headers({"Content-Type": "application/json"}),
        )
        if response.status_code >= 400:
            if _is_not_found(response):
                raise StorageObjectNotFoundError(
                    f"Supabase Storage bucket {bucket!r} not found",
                    status_code=response.status_code,
                )
            error, _ = _error_fields(response)
            raise StorageServiceError(
                f"Supabase Storage list failed with status {response.status_code}",
                status_code=response.status_code,
                error=error,
            )

        entries = response.json()
        if not isinstance(entries, list):
            raise StorageServiceError("unexpected list payload from Supabase Storage")

        objects: list[StorageObject] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            metadata = entry.get("metadata") or {}
            size = metadata.get("size") if isinstance(metadata, dict) else None
            objects.append(
                StorageObject(
                    name=str(entry.get("name") or ""),
                    id=str(entry["id"]) if entry.get("id") is not None else None,
                    content_type=(
                        metadata.get("mimetype") if isinstance(metadata, dict) else None
                    ),
                    size=int(size) if size is not None else None,
                )
            )
        return objects

    def upload_object(
        self,
        bucket: str,
        name: str,
        data: bytes,
        *,
        content_type: str | None = None,
        upsert: bool = False,
    ) -> str:
        if not name:
            raise StorageServiceError("storage path is required")
        normalized_path = name.lstrip("/")
        request_url = (
            f"{self._base_url()}/storage/v1/object/{bucket}/"
            f"{quote(normalized_path, safe='/')}"
        )
        response = self._request(
            "POST",
            request_url,
            content=data,
            headers=self._headers(
                {
                    "Content-Type": content_type or "application/octet-stream",
                    "x-upsert": "true" if upsert else "false",
                }
            ),
        )
        if response.status_code >= 400:
            error, _ = _error_fields(response)
            raise StorageServiceError(
                f"Supabase Storage upload failed with status {response.status_code}",
                status_code=response.status_code,
                error=error,
            )
        return f"{bucket}/{normalized_path}"

    def bucket_exists(self, bucket: str) -> bool:
        response = self._request(
            "GET",
            f"{self._base_url()}/storage/v1/bucket/{bucket}",
            headers=self._headers(),
        )
        if response.status_code == 200:
            return True
        if _is_not_found(response):
            return False
        raise StorageServiceError(
            f"Supabase Storage bucket lookup failed with status {response.status_code}",
            status_code=response.status_code,
        )

    def create_bucket(self, bucket: str, *, public: bool = True) -> None:
        response = self._request(
            "POST",
            f"{self._base_url()}/storage/v1/bucket",
            json={"id": bucket, "name": bucket, "public": bool(public)},
            headers=self._headers({"Content-Type": "application/json"}),
        )
        if response.status_code in {200, 201}:
            logger.info("Created storage bucket", extra={"bucket": bucket, "public": public})
            return
        _, message = _error_fields(response)
        if "already exists" in str(message or "").lower():
            return
        raise StorageServiceError(
            f"Supabase Storage bucket creation failed with status {response.status_code}",
            status_code=response.status_code,
        )

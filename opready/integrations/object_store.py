"""Evidence object-store gateway.

Architecture:
  BaseObjectStore defines the collaborator contract used by the evidence
  manager: ``put(path, data) -> url | None``, ``get(path) -> bytes`` and
  ``remove(path)``. Two backends implement it:
    - LocalObjectStore        : files under OBJECT_STORE_ROOT/<bucket>/
    - SupabaseStorageGateway  : Supabase Storage REST API via requests
  Every failure surfaces as StorageError. There is no retry: a failed call
  is terminal for that attempt.

The configured backend is built once at start-up by ``init_object_store``
and kept on ``app.extensions["object_store"]``.
"""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from urllib.parse import quote

import requests

from opready.core.exceptions import StorageError

logger = logging.getLogger(__name__)

_EXTENSION_KEY = "object_store"


def _check_path(path: str) -> str:
    """Reject empty, absolute or parent-traversing object paths."""
    if not path or path.startswith("/") or "\\" in path:
        raise StorageError("Invalid object path", path=path)
    if any(part in ("", ".", "..") for part in path.split("/")):
        raise StorageError("Invalid object path", path=path)
    return path


class BaseObjectStore(ABC):
    """Collaborator contract for evidence blobs."""

    backend = "base"

    def __init__(self, bucket: str) -> None:
        self.bucket = bucket

    @abstractmethod
    def put(self, path: str, data: bytes, content_type: str | None = None) -> str | None:
        """Store *data* under *path*; return a retrievable URL when one exists."""

    @abstractmethod
    def get(self, path: str) -> bytes:
        """Return the stored bytes for *path*."""

    @abstractmethod
    def remove(self, path: str) -> None:
        """Delete the object at *path*."""


class LocalObjectStore(BaseObjectStore):
    """Filesystem backend. Used in development and tests.

    Objects are written below ``<root>/<bucket>/``. No public URL is
    resolved; files are served through the evidence download endpoint.
    """

    backend = "local"

    def __init__(self, root: str, bucket: str = "evidence") -> None:
        super().__init__(bucket)
        self.root = os.path.abspath(root)
        os.makedirs(self.root, exist_ok=True)

    def _full_path(self, path: str) -> str:
        return os.path.join(self.root, self.bucket, *_check_path(path).split("/"))

    def put(self, path: str, data: bytes, content_type: str | None = None) -> str | None:
        full = self._full_path(path)
        if os.path.exists(full):
            raise StorageError("Object already exists", path=path)
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, "wb") as fh:
                fh.write(data)
        except OSError as exc:
            raise StorageError(f"Upload failed: {exc}", path=path) from exc
        logger.info("Object stored backend=local path=%s size=%d", path, len(data))
        return None

    def get(self, path: str) -> bytes:
        full = self._full_path(path)
        try:
            with open(full, "rb") as fh:
                return fh.read()
        except FileNotFoundError as exc:
            raise StorageError("Object not found", path=path) from exc
        except OSError as exc:
            raise StorageError(f"Download failed: {exc}", path=path) from exc

    def remove(self, path: str) -> None:
        full = self._full_path(path)
        try:
            os.remove(full)
        except FileNotFoundError as exc:
            raise StorageError("Object not found", path=path) from exc
        except OSError as exc:
            raise StorageError(f"Delete failed: {exc}", path=path) from exc
        logger.info("Object removed backend=local path=%s", path)

    def exists(self, path: str) -> bool:
        return os.path.exists(self._full_path(path))


class SupabaseStorageGateway(BaseObjectStore):
    """Supabase Storage REST backend.

    Endpoints (relative to ``<base_url>/storage/v1``):
      POST   /object/<bucket>/<path>         upload
      GET    /object/<bucket>/<path>         authenticated download
      DELETE /object/<bucket>  {prefixes}    remove
      public URL: /object/public/<bucket>/<path>
    """

    backend = "supabase"

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str = "evidence",
        timeout: int = 30,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(bucket)
        if not base_url or not service_key:
            raise StorageError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required for the supabase backend")
        self.base_url = base_url.rstrip("/")
        self._service_key = service_key
        self.timeout = timeout
        self.session = session or requests.Session()

    # ── URLs ──────────────────────────────────────────────────────────────

    def _object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(_check_path(path))}"

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(_check_path(path))}"

    def _headers(self, content_type: str | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._service_key}",
            "apikey": self._service_key,
        }
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    # ── Calls ─────────────────────────────────────────────────────────────

    def _call(self, method: str, url: str, path: str, **kwargs) -> requests.Response:
        start = time.monotonic()
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.warning("Storage %s failed path=%s error=%s", method, path, exc)
            raise StorageError(f"Storage request failed: {exc}", path=path) from exc
        duration_ms = int((time.monotonic() - start) * 1000)
        if resp.status_code >= 400:
            detail = resp.text[:300] if resp.text else resp.reason
            logger.warning(
                "Storage %s rejected path=%s status=%s duration_ms=%s",
                method, path, resp.status_code, duration_ms,
            )
            raise StorageError(f"Storage returned HTTP {resp.status_code}: {detail}", path=path)
        logger.debug("Storage %s ok path=%s duration_ms=%s", method, path, duration_ms)
        return resp

    def put(self, path: str, data: bytes, content_type: str | None = None) -> str | None:
        headers = self._headers(content_type or "application/octet-stream")
        headers["x-upsert"] = "false"
        self._call("POST", self._object_url(path), path, data=data, headers=headers)
        logger.info("Object stored backend=supabase path=%s size=%d", path, len(data))
        return self.public_url(path)

    def get(self, path: str) -> bytes:
        resp = self._call("GET", self._object_url(path), path, headers=self._headers())
        return resp.content

    def remove(self, path: str) -> None:
        url = f"{self.base_url}/storage/v1/object/{self.bucket}"
        self._call(
            "DELETE", url, _check_path(path),
            json={"prefixes": [path]},
            headers=self._headers("application/json"),
        )
        logger.info("Object removed backend=supabase path=%s", path)


# ── Factory / app wiring ──────────────────────────────────────────────────────


def build_object_store(config) -> BaseObjectStore:
    """Construct the backend named by ``OBJECT_STORE_BACKEND``.

    Args:
        config: Flask config mapping (or any dict with the same keys).
    """
    backend = (config.get("OBJECT_STORE_BACKEND") or "local").lower()
    bucket = config.get("EVIDENCE_BUCKET") or "evidence"
    if backend == "local":
        return LocalObjectStore(config.get("OBJECT_STORE_ROOT") or "instance/evidence", bucket)
    if backend == "supabase":
        return SupabaseStorageGateway(
            config.get("SUPABASE_URL") or "",
            config.get("SUPABASE_SERVICE_KEY") or "",
            bucket=bucket,
            timeout=int(config.get("OBJECT_STORE_TIMEOUT") or 30),
        )
    raise ValueError(f"Unknown OBJECT_STORE_BACKEND: {backend!r}")


def init_object_store(app) -> BaseObjectStore:
    """Build the configured object store and register it on the app."""
    store = build_object_store(app.config)
    app.extensions[_EXTENSION_KEY] = store
    app.logger.info("Object store configured: backend=%s bucket=%s", store.backend, store.bucket)
    return store


def get_object_store() -> BaseObjectStore:
    """Return the object store registered on the current app."""
    from flask import current_app

    return current_app.extensions[_EXTENSION_KEY]

"""Durable object storage for uploads, packets, and archives.

Two backends share the :class:`ObjectStore` protocol:

- :class:`S3ObjectStore`: any S3-compatible bucket via ``boto3``.
  Retrieval references are native presigned GET URLs.
- :class:`LocalObjectStore`: a directory tree on local disk, used for
  development and single-node deployments.  Retrieval references are
  Fernet tokens (which embed their issue time) served by
  ``GET /storage/{token}`` and rejected once older than the TTL.

Keys are POSIX-style relative paths produced by :mod:`app.storage.keys`.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
from contextlib import closing
from pathlib import Path
from typing import BinaryIO, ContextManager, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from cryptography.fernet import Fernet, InvalidToken

from app.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
ZIP_CONTENT_TYPE = "application/zip"

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------


class StorageError(RuntimeError):
    """Raised when the storage backend fails to complete an operation."""


class ObjectNotFoundError(StorageError):
    """Raised when a key does not exist in the store."""

    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}")
        self.key = key


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ObjectStore(Protocol):
    def put_bytes(
        self, key: str, data: bytes, *, content_type: str | None = None, filename: str | None = None
    ) -> None:
        ...

    def put_stream(
        self, key: str, stream: BinaryIO, *, content_type: str | None = None, filename: str | None = None
    ) -> None:
        ...

    def get_bytes(self, key: str) -> bytes:
        ...

    def open_stream(self, key: str) -> ContextManager[BinaryIO]:
        ...

    def delete(self, key: str) -> None:
        ...

    def presign_get(self, key: str, *, expires_in: int | None = None) -> str:
        ...


def _content_disposition(filename: str | None) -> str | None:
    if not filename:
        return None
    return f'attachment; filename="{filename}"'


# ---------------------------------------------------------------------------
# S3
# ---------------------------------------------------------------------------


class S3ObjectStore:
    """Thin wrapper around an S3-compatible bucket."""

    def __init__(self, settings: Settings | None = None, client=None) -> None:
        settings = settings or get_settings()
        if not settings.storage_bucket:
            raise RuntimeError("STORAGE_BUCKET is required for the s3 storage backend")

        self.bucket = settings.storage_bucket
        self.presign_ttl = int(settings.storage_presign_ttl_seconds or 300)
        if client is None:
            session = boto3.session.Session()
            client = session.client(
                "s3",
                endpoint_url=settings.storage_endpoint,
                aws_access_key_id=settings.storage_access_key,
                aws_secret_access_key=settings.storage_secret_key,
                region_name=settings.storage_region,
                config=Config(signature_version="s3v4", retries={"max_attempts": 3, "mode": "standard"}),
            )
        self.client = client

    def _extra_args(self, content_type: str | None, filename: str | None) -> dict[str, str]:
        extra: dict[str, str] = {}
        if content_type:
            extra["ContentType"] = content_type
        disposition = _content_disposition(filename)
        if disposition:
            extra["ContentDisposition"] = disposition
        return extra

    def put_bytes(
        self, key: str, data: bytes, *, content_type: str | None = None, filename: str | None = None
    ) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket, Key=key, Body=data, **self._extra_args(content_type, filename)
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to write {key}: {exc}") from exc

    def put_stream(
        self, key: str, stream: BinaryIO, *, content_type: str | None = None, filename: str | None = None
    ) -> None:
        try:
            self.client.upload_fileobj(
                stream, self.bucket, key, ExtraArgs=self._extra_args(content_type, filename)
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to upload {key}: {exc}") from exc

    def _get_object(self, key: str) -> dict:
        try:
            return self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code") if hasattr(exc, "response") else None
            if code in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(key) from exc
            raise StorageError(f"Failed to read {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to read {key}: {exc}") from exc

    def get_bytes(self, key: str) -> bytes:
        body = self._get_object(key).get("Body")
        if body is None:
            return b""
        with closing(body):
            return body.read()

    def open_stream(self, key: str) -> ContextManager[BinaryIO]:
        return closing(self._get_object(key)["Body"])

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to delete {key}: {exc}") from exc

    def presign_get(self, key: str, *, expires_in: int | None = None) -> str:
        ttl = int(expires_in or self.presign_ttl)
        return self.client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=ttl,
        )


# ---------------------------------------------------------------------------
# Local filesystem
# ---------------------------------------------------------------------------


class LocalObjectStore:
    """Store objects as files under *root*; sign retrieval links with Fernet."""

    def __init__(
        self,
        root: str | Path,
        *,
        signing_key: str | None = None,
        public_base_url: str = "",
        presign_ttl: int = 300,
    ) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        if not signing_key:
            logger.warning("STORAGE_SIGNING_KEY not set; download links will not survive a restart")
            signing_key = Fernet.generate_key().decode("utf-8")
        self._fernet = Fernet(signing_key.encode("utf-8"))
        self.public_base_url = public_base_url.rstrip("/")
        self.presign_ttl = presign_ttl

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise StorageError(f"Key escapes storage root: {key!r}")
        return path

    def put_bytes(
        self, key: str, data: bytes, *, content_type: str | None = None, filename: str | None = None
    ) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp_")
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, path)
        except OSError as exc:
            raise StorageError(f"Failed to write {key}: {exc}") from exc

    def put_stream(
        self, key: str, stream: BinaryIO, *, content_type: str | None = None, filename: str | None = None
    ) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp_")
            with os.fdopen(fd, "wb") as fh:
                shutil.copyfileobj(stream, fh)
            os.replace(tmp_name, path)
        except OSError as exc:
            raise StorageError(f"Failed to upload {key}: {exc}") from exc

    def get_bytes(self, key: str) -> bytes:
        with self.open_stream(key) as fh:
            return fh.read()

    def open_stream(self, key: str) -> ContextManager[BinaryIO]:
        path = self._path(key)
        try:
            return open(path, "rb")
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(key) from exc
        except OSError as exc:
            raise StorageError(f"Failed to read {key}: {exc}") from exc

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete {key}: {exc}") from exc

    def presign_get(self, key: str, *, expires_in: int | None = None) -> str:
        token = self._fernet.encrypt(key.encode("utf-8")).decode("utf-8")
        return f"{self.public_base_url}/storage/{token}"

    def resolve_token(self, token: str, *, ttl: int | None = None) -> Path:
        """Return the file behind a download token, or raise ``ObjectNotFoundError``."""
        try:
            key = self._fernet.decrypt(token.encode("utf-8"), ttl=ttl or self.presign_ttl).decode("utf-8")
        except InvalidToken as exc:
            raise ObjectNotFoundError("<expired or invalid token>") from exc
        path = self._path(key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        return path


def build_object_store(settings: Settings | None = None) -> ObjectStore:
    """Return the store selected by ``STORAGE_BACKEND``."""
    settings = settings or get_settings()
    backend = settings.storage_backend.lower()
    if backend == "s3":
        return S3ObjectStore(settings)
    if backend == "local":
        return LocalObjectStore(
            settings.storage_root,
            signing_key=settings.storage_signing_key,
            public_base_url=settings.public_base_url,
            presign_ttl=settings.storage_presign_ttl_seconds,
        )
    raise ValueError(f"Unknown STORAGE_BACKEND {settings.storage_backend!r}; must be 'local' or 's3'")

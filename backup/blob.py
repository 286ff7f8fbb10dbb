from __future__ import annotations

"""Blob storage backends used for analytics backups.

- LocalBlobStore: files under a root directory, written atomically.
- S3BlobStore: an S3 bucket/prefix via boto3.

Both return None for missing objects instead of raising; anything else that
goes wrong surfaces as BlobStoreError.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from clock import to_iso

logger = logging.getLogger(__name__)

_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


class BlobStoreError(RuntimeError):
    pass


@dataclass(frozen=True)
class BlobInfo:
    key: str
    size: int
    last_modified: Optional[str]
    url: Optional[str] = None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return to_iso(value) if value is not None else None


def _validate_key(key: str) -> str:
    k = str(key or "").strip().lstrip("/")
    if not k:
        raise BlobStoreError("blob key is required")
    parts = k.split("/")
    if any(p in ("", ".", "..") for p in parts):
        raise BlobStoreError(f"invalid blob key: {key!r}")
    return k


class BlobStore:
    name = "abstract"

    def put_bytes(self, key: str, data: bytes, *, content_type: str = "application/json") -> BlobInfo:
        raise NotImplementedError

    def get_bytes(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def head(self, key: str) -> Optional[BlobInfo]:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def list(self, prefix: str = "") -> List[BlobInfo]:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Local filesystem
# ---------------------------------------------------------------------------


class LocalBlobStore(BlobStore):
    name = "local"

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        path = (self.root / _validate_key(key)).resolve()
        if self.root != path and self.root not in path.parents:
            raise BlobStoreError(f"blob key escapes root: {key!r}")
        return path

    def _info(self, key: str, path: Path) -> BlobInfo:
        st = path.stat()
        return BlobInfo(
            key=key,
            size=int(st.st_size),
            last_modified=_iso(datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)),
            url=path.as_uri(),
        )

    def put_bytes(self, key: str, data: bytes, *, content_type: str = "application/json") -> BlobInfo:
        k = _validate_key(key)
        path = self._path(k)
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError as exc:
            raise BlobStoreError(f"failed to write blob {k!r}: {exc}") from exc
        return self._info(k, path)

    def get_bytes(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise BlobStoreError(f"failed to read blob {key!r}: {exc}") from exc

    def head(self, key: str) -> Optional[BlobInfo]:
        k = _validate_key(key)
        path = self._path(k)
        if not path.is_file():
            return None
        return self._info(k, path)

    def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise BlobStoreError(f"failed to delete blob {key!r}: {exc}") from exc

    def list(self, prefix: str = "") -> List[BlobInfo]:
        if not self.root.exists():
            return []
        out: List[BlobInfo] = []
        for path in sorted(self.root.rglob("*")):
            if not path.is_file() or path.name.endswith(".tmp"):
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                out.append(self._info(key, path))
        return out


# ---------------------------------------------------------------------------
# S3
# ---------------------------------------------------------------------------


class S3BlobStore(BlobStore):
    name = "s3"

    def __init__(self, bucket: str, *, prefix: str = "", client: Any = None):
        if not bucket:
            raise BlobStoreError("S3 bucket is required")
        self.bucket = bucket
        self.prefix = prefix if (not prefix or prefix.endswith("/")) else prefix + "/"
        self._s3 = client if client is not None else boto3.client("s3")

    def _full(self, key: str) -> str:
        return f"{self.prefix}{_validate_key(key)}"

    def _strip(self, full_key: str) -> str:
        return full_key[len(self.prefix):] if full_key.startswith(self.prefix) else full_key

    @staticmethod
    def _is_missing(exc: ClientError) -> bool:
        code = exc.response.get("Error", {}).get("Code")
        return str(code) in _MISSING_CODES

    def put_bytes(self, key: str, data: bytes, *, content_type: str = "application/json") -> BlobInfo:
        full = self._full(key)
        try:
            self._s3.put_object(Bucket=self.bucket, Key=full, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as exc:
            raise BlobStoreError(f"failed to upload s3://{self.bucket}/{full}: {exc}") from exc
        logger.info("uploaded s3://%s/%s (%d bytes)", self.bucket, full, len(data))
        return BlobInfo(key=self._strip(full), size=len(data), last_modified=None, url=f"s3://{self.bucket}/{full}")

    def get_bytes(self, key: str) -> Optional[bytes]:
        full = self._full(key)
        try:
            resp = self._s3.get_object(Bucket=self.bucket, Key=full)
            return resp["Body"].read()
        except ClientError as exc:
            if self._is_missing(exc):
                return None
            raise BlobStoreError(f"failed to download s3://{self.bucket}/{full}: {exc}") from exc
        except BotoCoreError as exc:
            raise BlobStoreError(f"failed to download s3://{self.bucket}/{full}: {exc}") from exc

    def head(self, key: str) -> Optional[BlobInfo]:
        full = self._full(key)
        try:
            resp = self._s3.head_object(Bucket=self.bucket, Key=full)
        except ClientError as exc:
            if self._is_missing(exc):
                return None
            raise BlobStoreError(f"failed to stat s3://{self.bucket}/{full}: {exc}") from exc
        except BotoCoreError as exc:
            raise BlobStoreError(f"failed to stat s3://{self.bucket}/{full}: {exc}") from exc
        return BlobInfo(
            key=self._strip(full),
            size=int(resp.get("ContentLength") or 0),
            last_modified=_iso(resp.get("LastModified")),
            url=f"s3://{self.bucket}/{full}",
        )

    def delete(self, key: str) -> bool:
        if self.head(key) is None:
            return False
        full = self._full(key)
        try:
            self._s3.delete_object(Bucket=self.bucket, Key=full)
        except (ClientError, BotoCoreError) as exc:
            raise BlobStoreError(f"failed to delete s3://{self.bucket}/{full}: {exc}") from exc
        return True

    def list(self, prefix: str = "") -> List[BlobInfo]:
        out: List[BlobInfo] = []
        try:
            paginator = self._s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=f"{self.prefix}{prefix}"):
                for obj in page.get("Contents", []) or []:
                    full = obj["Key"]
                    out.append(
                        BlobInfo(
                            key=self._strip(full),
                            size=int(obj.get("Size") or 0),
                            last_modified=_iso(obj.get("LastModified")),
                            url=f"s3://{self.bucket}/{full}",
                        )
                    )
        except (ClientError, BotoCoreError) as exc:
            raise BlobStoreError(f"failed to list s3://{self.bucket}/{self.prefix}{prefix}: {exc}") from exc
        return out


def build_blob_store(settings) -> Optional[BlobStore]:
    """Blob backend from settings; None when backups are disabled."""
    if settings.blob_backend == "none":
        return None
    if settings.blob_backend == "s3":
        return S3BlobStore(settings.s3_bucket, prefix=settings.s3_prefix)
    return LocalBlobStore(settings.blob_dir)

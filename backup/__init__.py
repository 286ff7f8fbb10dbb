"""Backup/restore of analytics counters to blob storage (local filesystem or S3)."""

from .blob import BlobInfo, BlobStore, BlobStoreError, LocalBlobStore, S3BlobStore, build_blob_store
from .service import BACKUP_FORMAT, BACKUP_FORMAT_VERSION, BackupError, BackupNotFoundError, BackupService

__all__ = [
    "BACKUP_FORMAT",
    "BACKUP_FORMAT_VERSION",
    "BackupError",
    "BackupNotFoundError",
    "BackupService",
    "BlobInfo",
    "BlobStore",
    "BlobStoreError",
    "LocalBlobStore",
    "S3BlobStore",
    "build_blob_store",
]

"""Storage buckets and file metadata.

Only metadata is kept here; file payloads live wherever `path` points.
Buckets are addressed by name within a project, files by id.
"""

import uuid
from typing import Any

import structlog

from tenantdb.database import BUCKETS, BUCKETS_LOCK, FILES, DocumentStore, TableLockManager
from tenantdb.errors import ConflictError, NotFoundError, ValidationError
from tenantdb.tenants import TenantStore, utcnow_iso

logger = structlog.get_logger()


class BucketStore:
    """Per-project buckets and the files registered in them."""

    def __init__(
        self,
        store: DocumentStore,
        tenants: TenantStore,
        lock_manager: TableLockManager,
    ) -> None:
        self.store = store
        self.tenants = tenants
        self.lock_manager = lock_manager

    def _find_bucket(self, project_id: str, bucket_name: str) -> dict[str, Any] | None:
        for bucket in self.store.scan(BUCKETS, project_id=project_id):
            if bucket["name"] == bucket_name:
                return bucket
        return None

    def list_buckets(self, project_id: str) -> list[dict[str, Any]]:
        self.tenants.get_project(project_id)
        return self.store.scan(BUCKETS, project_id=project_id)

    def get_bucket(self, project_id: str, bucket_name: str) -> dict[str, Any]:
        self.tenants.get_project(project_id)
        bucket = self._find_bucket(project_id, bucket_name)
        if bucket is None:
            raise NotFoundError("Bucket not found", project_id=project_id, bucket=bucket_name)
        return bucket

    def create_bucket(
        self,
        project_id: str,
        name: str | None,
        public: bool = False,
    ) -> dict[str, Any]:
        self.tenants.get_project(project_id)
        if not name or not name.strip():
            raise ValidationError("Bucket name is required")

        with self.lock_manager.acquire(project_id, BUCKETS_LOCK):
            self.tenants.get_project(project_id)
            if self._find_bucket(project_id, name) is not None:
                raise ConflictError(
                    f"Bucket {name} already exists",
                    project_id=project_id,
                    bucket=name,
                )

            bucket = {
                "id": str(uuid.uuid4()),
                "project_id": project_id,
                "name": name,
                "public": bool(public),
                "created_at": utcnow_iso(),
            }
            self.store.put(BUCKETS, bucket["id"], bucket, project_id=project_id)

        logger.info("bucket_created", project_id=project_id, bucket=name, public=bucket["public"])
        return bucket

    def delete_bucket(self, project_id: str, bucket_name: str) -> int:
        """
        Delete a bucket and the metadata of every file in it.

        Returns:
            Number of file records removed
        """
        self.tenants.get_project(project_id)

        with self.lock_manager.acquire(project_id, BUCKETS_LOCK):
            bucket = self._find_bucket(project_id, bucket_name)
            if bucket is None:
                raise NotFoundError("Bucket not found", project_id=project_id, bucket=bucket_name)

            files_deleted = 0
            for file in self.store.scan(FILES, project_id=project_id):
                if file["bucket_id"] == bucket["id"] and self.store.delete(FILES, file["id"]):
                    files_deleted += 1
            self.store.delete(BUCKETS, bucket["id"])

        logger.info(
            "bucket_deleted",
            project_id=project_id,
            bucket=bucket_name,
            files_deleted=files_deleted,
        )
        return files_deleted

    def list_files(self, project_id: str, bucket_name: str) -> list[dict[str, Any]]:
        bucket = self.get_bucket(project_id, bucket_name)
        return [
            file
            for file in self.store.scan(FILES, project_id=project_id)
            if file["bucket_id"] == bucket["id"]
        ]

    def register_file(
        self,
        project_id: str,
        bucket_name: str,
        name: str | None,
        path: str | None,
        size: int,
        mime_type: str | None,
    ) -> dict[str, Any]:
        """Record metadata for a file stored in a bucket."""
        if not name or not path or not mime_type:
            raise ValidationError("File name, path and mime type are required")
        if size < 0:
            raise ValidationError("File size must not be negative")

        with self.lock_manager.acquire(project_id, BUCKETS_LOCK):
            bucket = self.get_bucket(project_id, bucket_name)
            file = {
                "id": str(uuid.uuid4()),
                "project_id": project_id,
                "bucket_id": bucket["id"],
                "name": name,
                "path": path,
                "size": size,
                "mime_type": mime_type,
                "created_at": utcnow_iso(),
            }
            self.store.put(FILES, file["id"], file, project_id=project_id)

        logger.info(
            "file_registered",
            project_id=project_id,
            bucket=bucket_name,
            file_id=file["id"],
            size=size,
        )
        return file

    def delete_file(self, project_id: str, bucket_name: str, file_id: str) -> None:
        bucket = self.get_bucket(project_id, bucket_name)

        file = self.store.get(FILES, file_id)
        if file is None or file["bucket_id"] != bucket["id"]:
            raise NotFoundError("File not found", bucket=bucket_name, file_id=file_id)

        self.store.delete(FILES, file_id)
        logger.info("file_deleted", project_id=project_id, bucket=bucket_name, file_id=file_id)

    def count_buckets(self) -> int:
        return self.store.count(BUCKETS)

"""Project (tenant) lifecycle: create, list, look up, cascade delete."""

import uuid
from datetime import datetime, timezone
from typing import Any

import structlog

from tenantdb.auth import KeyRegistry
from tenantdb.database import (
    AUTH_USERS,
    BUCKETS,
    BUCKETS_LOCK,
    CATALOG_LOCK,
    FILES,
    PROJECTS,
    TABLES,
    USERS_LOCK,
    DocumentStore,
    TableLockManager,
)
from tenantdb.errors import NotFoundError, ValidationError

logger = structlog.get_logger()

STATUS_ACTIVE = "active"
STATUS_DELETING = "deleting"


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class TenantStore:
    """
    Owns Project records.

    `get_project` is the authoritative existence check for everything a
    project owns: it always reads the store and treats a project that is
    being deleted as already gone.
    """

    def __init__(
        self,
        store: DocumentStore,
        keys: KeyRegistry,
        lock_manager: TableLockManager,
        base_url: str = "",
    ) -> None:
        self.store = store
        self.keys = keys
        self.lock_manager = lock_manager
        self.base_url = base_url.rstrip("/")

    def create_project(self, owner_id: str, name: str | None) -> dict[str, Any]:
        """Create a project owned by an administrator and issue its API keys."""
        if not name or not name.strip():
            raise ValidationError("Project name is required")

        project_id = str(uuid.uuid4())
        project_keys = self.keys.issue_project_keys()

        project = {
            "id": project_id,
            "owner_id": owner_id,
            "name": name,
            "created_at": utcnow_iso(),
            "url": f"{self.base_url}/projects/{project_id}",
            "status": STATUS_ACTIVE,
            "anon_key": project_keys.anon_key,
            "service_key": project_keys.service_key,
        }
        self.store.put(PROJECTS, project_id, project, project_id=project_id)

        logger.info("project_created", project_id=project_id, owner_id=owner_id)
        return project

    def list_projects(self, owner_id: str) -> list[dict[str, Any]]:
        """List active projects owned by an administrator, oldest first."""
        return [
            project
            for project in self.store.scan(PROJECTS)
            if project["owner_id"] == owner_id and project["status"] == STATUS_ACTIVE
        ]

    def find_project(self, project_id: str) -> dict[str, Any] | None:
        """Raw lookup, regardless of status."""
        return self.store.get(PROJECTS, project_id)

    def get_project(self, project_id: str) -> dict[str, Any]:
        """
        Get an active project.

        Raises:
            NotFoundError: If the project does not exist or is being deleted
        """
        project = self.find_project(project_id)
        if project is None or project["status"] != STATUS_ACTIVE:
            raise NotFoundError("Project not found", project_id=project_id)
        return project

    def get_owned_project(self, owner_id: str, project_id: str) -> dict[str, Any]:
        """Get an active project, hiding projects owned by other accounts."""
        project = self.get_project(project_id)
        if project["owner_id"] != owner_id:
            logger.warning(
                "project_owner_mismatch",
                project_id=project_id,
                requested_by=owner_id,
            )
            raise NotFoundError("Project not found", project_id=project_id)
        return project

    def delete_project(self, owner_id: str, project_id: str) -> dict[str, int]:
        """
        Delete a project and everything it owns.

        Order:
        1. mark the project as deleting (readers see NotFound from here on)
        2. tables (under the catalog lock, each under its table lock, so
           in-flight writes finish)
        3. auth users (under the users lock)
        4. buckets and files (under the buckets lock)
        5. the project record, then its locks

        Every step is idempotent; calling this again for a project left in
        the deleting state resumes the cascade.

        Returns:
            Dict with counts of deleted records per collection
        """
        project = self.find_project(project_id)
        if project is None or project["owner_id"] != owner_id:
            raise NotFoundError("Project not found", project_id=project_id)

        if project["status"] != STATUS_DELETING:
            project["status"] = STATUS_DELETING
            self.store.put(PROJECTS, project_id, project, project_id=project_id)
            logger.info("project_delete_started", project_id=project_id)

        counts: dict[str, int] = {"tables": 0}

        # Creators re-check the project under these locks, so nothing new
        # appears behind a step once it has run
        with self.lock_manager.acquire(project_id, CATALOG_LOCK):
            for table in self.store.scan(TABLES, project_id=project_id):
                with self.lock_manager.acquire(project_id, table["id"]):
                    if self.store.delete(TABLES, table["id"]):
                        counts["tables"] += 1
                self.lock_manager.remove_lock(project_id, table["id"])

        with self.lock_manager.acquire(project_id, USERS_LOCK):
            counts["auth_users"] = self.store.delete_project_documents(AUTH_USERS, project_id)

        with self.lock_manager.acquire(project_id, BUCKETS_LOCK):
            counts["buckets"] = self.store.delete_project_documents(BUCKETS, project_id)
            counts["files"] = self.store.delete_project_documents(FILES, project_id)

        self.store.delete(PROJECTS, project_id)
        self.lock_manager.clear_project_locks(project_id)

        logger.info(
            "project_deleted",
            project_id=project_id,
            deleted_counts=counts,
        )
        return counts

    def count_projects(self) -> int:
        return self.store.count(PROJECTS)

"""End users of a project (the people who sign up through client apps)."""

import uuid
from typing import Any

import bcrypt
import structlog

from tenantdb.database import AUTH_USERS, USERS_LOCK, DocumentStore, TableLockManager
from tenantdb.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from tenantdb.tenants import TenantStore, utcnow_iso

logger = structlog.get_logger()

DEFAULT_HASH_ROUNDS = 12


def hash_password(plaintext: str, rounds: int = DEFAULT_HASH_ROUNDS) -> str:
    """Hash a plaintext password with bcrypt."""
    return bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def verify_password(plaintext: str, hashed: str) -> bool:
    """Verify a plaintext password against a bcrypt hash."""
    return bcrypt.checkpw(plaintext.encode("utf-8"), hashed.encode("utf-8"))


def public_user(user: dict[str, Any]) -> dict[str, Any]:
    """Strip the password hash."""
    return {"id": user["id"], "email": user["email"], "created_at": user["created_at"]}


class AuthUserStore:
    """
    Email/password accounts scoped to a project.

    Login tokens are opaque uuid4 strings. There is no server-side session
    behind them; client apps treat them as proof that login succeeded.
    """

    def __init__(
        self,
        store: DocumentStore,
        tenants: TenantStore,
        lock_manager: TableLockManager,
        hash_rounds: int = DEFAULT_HASH_ROUNDS,
    ) -> None:
        self.store = store
        self.tenants = tenants
        self.lock_manager = lock_manager
        self.hash_rounds = hash_rounds

    def _find_by_email(self, project_id: str, email: str) -> dict[str, Any] | None:
        for user in self.store.scan(AUTH_USERS, project_id=project_id):
            if user["email"] == email:
                return user
        return None

    def list_users(self, project_id: str) -> list[dict[str, Any]]:
        self.tenants.get_project(project_id)
        return [public_user(u) for u in self.store.scan(AUTH_USERS, project_id=project_id)]

    def create_user(
        self,
        project_id: str,
        email: str | None,
        password: str | None,
    ) -> dict[str, Any]:
        self.tenants.get_project(project_id)
        if not email or not password:
            raise ValidationError("Email and password are required")

        password_hash = hash_password(password, self.hash_rounds)

        with self.lock_manager.acquire(project_id, USERS_LOCK):
            self.tenants.get_project(project_id)
            if self._find_by_email(project_id, email) is not None:
                raise ConflictError("User already exists", project_id=project_id)

            user = {
                "id": str(uuid.uuid4()),
                "project_id": project_id,
                "email": email,
                "password_hash": password_hash,
                "created_at": utcnow_iso(),
            }
            self.store.put(AUTH_USERS, user["id"], user, project_id=project_id)

        logger.info("auth_user_created", project_id=project_id, user_id=user["id"])
        return public_user(user)

    def delete_user(self, project_id: str, user_id: str) -> None:
        self.tenants.get_project(project_id)

        user = self.store.get(AUTH_USERS, user_id)
        if user is None or user["project_id"] != project_id:
            raise NotFoundError("User not found", project_id=project_id, user_id=user_id)

        self.store.delete(AUTH_USERS, user_id)
        logger.info("auth_user_deleted", project_id=project_id, user_id=user_id)

    def signup(self, project_id: str, email: str | None, password: str | None) -> dict[str, Any]:
        user = self.create_user(project_id, email, password)
        return {"user": {"id": user["id"], "email": user["email"]}, "token": str(uuid.uuid4())}

    def login(self, project_id: str, email: str | None, password: str | None) -> dict[str, Any]:
        """
        Check credentials.

        Raises:
            UnauthorizedError: Unknown email or wrong password (indistinguishable)
        """
        self.tenants.get_project(project_id)

        user = self._find_by_email(project_id, email) if email else None
        if user is None or not password or not verify_password(password, user["password_hash"]):
            logger.warning("auth_user_login_failed", project_id=project_id)
            raise UnauthorizedError("Invalid email or password")

        logger.info("auth_user_login", project_id=project_id, user_id=user["id"])
        return {"user": {"id": user["id"], "email": user["email"]}, "token": str(uuid.uuid4())}

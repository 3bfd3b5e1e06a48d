"""Capability tokens: admin session tokens and project API keys.

Token Formats:
1. Admin session token: admin_{random_hex_16}
   Held in process memory only; lost on restart.

2. Project anon key: pk_anon_{random_hex_16}
3. Project service key: sk_service_{random_hex_16}
   Stored on the project record; never change.

The prefixes only help operators classify a leaked key at a glance.
Authorization is always an exact match against the stored value.
"""

import secrets
import threading
from dataclasses import dataclass

import structlog

from tenantdb.config import AdminAccountConfig
from tenantdb.errors import UnauthorizedError, ValidationError

logger = structlog.get_logger(__name__)

ADMIN_TOKEN_PREFIX = "admin"
ANON_KEY_PREFIX = "pk_anon"
SERVICE_KEY_PREFIX = "sk_service"


@dataclass(frozen=True)
class AdminAccount:
    """An authenticated administrator."""

    id: str
    name: str


@dataclass(frozen=True)
class ProjectKeys:
    """The API key pair issued to a new project."""

    anon_key: str
    service_key: str


def generate_key(prefix: str) -> str:
    """
    Generate a new opaque key with a role prefix.

    16 bytes (128 bits) of cryptographic randomness make collisions
    practically impossible.

    Example:
        >>> key = generate_key("pk_anon")
        >>> key.startswith("pk_anon_")
        True
        >>> len(key.rsplit("_", 1)[-1]) == 32
        True
    """
    return f"{prefix}_{secrets.token_hex(16)}"


def get_key_prefix(key: str) -> str:
    """
    Extract a safe prefix from a key for logging and display.

    Returns the role part of the key, which is safe to log without
    exposing the secret random portion.

    Example:
        >>> get_key_prefix("pk_anon_a1b2c3d4e5f6a7b8c9d0e1f2a3b4c5d6")
        'pk_anon_...'
        >>> get_key_prefix("admin_a1b2c3d4e5f6a7b8c9d0e1f2a3b4c5d6")
        'admin_...'
    """
    if "_" in key:
        return key.rsplit("_", 1)[0] + "_..."

    # Malformed keys: truncate and add ellipsis
    return key[:6] + "..." if len(key) > 6 else key + "..."


def keys_match(presented: str | None, stored: str) -> bool:
    """Constant-time comparison of a presented key against a stored one."""
    if not presented:
        return False
    return secrets.compare_digest(presented.encode(), stored.encode())


class AdminTokenStore:
    """Token → account bindings. Replaceable in tests."""

    def set(self, token: str, account: AdminAccount) -> None:
        raise NotImplementedError

    def get(self, token: str) -> AdminAccount | None:
        raise NotImplementedError

    def discard(self, token: str) -> None:
        raise NotImplementedError


class InMemoryAdminTokenStore(AdminTokenStore):
    """Process-wide revocable map, empty on startup."""

    def __init__(self) -> None:
        self._tokens: dict[str, AdminAccount] = {}
        self._lock = threading.Lock()

    def set(self, token: str, account: AdminAccount) -> None:
        with self._lock:
            self._tokens[token] = account

    def get(self, token: str) -> AdminAccount | None:
        with self._lock:
            return self._tokens.get(token)

    def discard(self, token: str) -> None:
        with self._lock:
            self._tokens.pop(token, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


class KeyRegistry:
    """Issues and resolves admin session tokens and project API keys."""

    def __init__(
        self,
        token_store: AdminTokenStore | None = None,
        admin_accounts: dict[str, AdminAccountConfig] | None = None,
    ) -> None:
        self.token_store = token_store if token_store is not None else InMemoryAdminTokenStore()
        self._admin_accounts = admin_accounts or {}

    def authenticate_admin(self, password: str | None) -> AdminAccount:
        """
        Check a login password against the configured admin allow-list.

        Raises:
            ValidationError: If no password was given
            UnauthorizedError: If the password matches no account
        """
        if not password:
            raise ValidationError("Password is required")

        for candidate, account in self._admin_accounts.items():
            if keys_match(password, candidate):
                logger.info("admin_login_succeeded", account_id=account.id)
                return AdminAccount(id=account.id, name=account.name)

        logger.warning("admin_login_failed")
        raise UnauthorizedError("Invalid password")

    def issue_admin_token(self, account: AdminAccount) -> str:
        """Create a session token bound to an administrator account."""
        token = generate_key(ADMIN_TOKEN_PREFIX)
        self.token_store.set(token, account)

        logger.info(
            "admin_token_issued",
            account_id=account.id,
            key_prefix=get_key_prefix(token),
        )
        return token

    def revoke_admin_token(self, token: str | None) -> None:
        """Remove a session token. Succeeds even if the token is unknown."""
        if not token:
            return
        self.token_store.discard(token)
        logger.info("admin_token_revoked", key_prefix=get_key_prefix(token))

    def resolve_admin_token(self, token: str | None) -> AdminAccount:
        """
        Look up the administrator bound to a session token.

        Raises:
            UnauthorizedError: If the token is missing or unknown
        """
        if not token:
            raise UnauthorizedError("Administrator authorization required")

        account = self.token_store.get(token)
        if account is None:
            logger.debug("admin_token_not_found", key_prefix=get_key_prefix(token))
            raise UnauthorizedError("Administrator authorization required")
        return account

    def issue_project_keys(self) -> ProjectKeys:
        """Generate a fresh anon/service key pair for a new project."""
        anon_key = generate_key(ANON_KEY_PREFIX)
        service_key = generate_key(SERVICE_KEY_PREFIX)

        logger.info(
            "project_keys_issued",
            anon_prefix=get_key_prefix(anon_key),
            service_prefix=get_key_prefix(service_key),
        )
        return ProjectKeys(anon_key=anon_key, service_key=service_key)

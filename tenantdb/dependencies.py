"""FastAPI dependencies for authentication and authorization.

Two capability families:

1. Admin session token (from POST /auth/login)
   Sent as X-Admin-Token (or Authorization: Bearer). Grants access to the
   admin API for projects owned by the token's account.

2. Project API keys (issued when a project is created)
   Sent as `apikey` (or Authorization: Bearer). The anon key and the
   service key both grant access to the project's client API. A valid
   admin token in X-Admin-Token is accepted there as well, so the admin
   console can browse client endpoints.

Usage in routers:
    @router.get("/admin/projects")
    async def list_projects(account: AdminAccount = Depends(require_admin)):
        ...

    @router.get("/admin/projects/{project_id}/tables")
    async def list_tables(project: dict = Depends(require_owned_project)):
        ...

    @router.get("/projects/{project_id}/{table}")
    async def list_rows(context: CallContext = Depends(require_project_key)):
        ...
"""

from dataclasses import dataclass
from typing import Annotated, Any

import structlog
from fastapi import Depends, Header, Path, Request

from tenantdb.auth import AdminAccount, get_key_prefix, keys_match
from tenantdb.errors import UnauthorizedError
from tenantdb.platform import Platform

logger = structlog.get_logger(__name__)

CAPABILITY_ANON = "anon"
CAPABILITY_SERVICE = "service"
CAPABILITY_ADMIN = "admin"


@dataclass(frozen=True)
class CallContext:
    """Who is calling a project-scoped endpoint, and with which capability."""

    project: dict[str, Any]
    capability: str
    account: AdminAccount | None = None

    @property
    def project_id(self) -> str:
        return self.project["id"]


def get_platform(request: Request) -> Platform:
    """The Platform built at startup (see main.lifespan)."""
    return request.app.state.platform


def bearer_token(authorization: str | None) -> str | None:
    """
    Extract the token from an `Authorization: Bearer <token>` header.

    Example:
        >>> bearer_token("Bearer abc")
        'abc'
        >>> bearer_token("Basic abc") is None
        True
    """
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


def authorize_project_key(
    platform: Platform,
    project_id: str,
    api_key: str | None,
    admin_token: str | None = None,
    allow_admin: bool = True,
) -> CallContext:
    """
    Resolve the capability of a caller on a project.

    The project is looked up first, so an unknown project is NotFound even
    when no key was presented.

    Raises:
        NotFoundError: If the project does not exist or is being deleted
        UnauthorizedError: If neither key nor admin token is valid
    """
    project = platform.tenants.get_project(project_id)

    if keys_match(api_key, project["anon_key"]):
        return CallContext(project=project, capability=CAPABILITY_ANON)
    if keys_match(api_key, project["service_key"]):
        return CallContext(project=project, capability=CAPABILITY_SERVICE)

    if allow_admin and admin_token:
        try:
            account = platform.keys.resolve_admin_token(admin_token)
        except UnauthorizedError:
            account = None
        if account is not None:
            return CallContext(project=project, capability=CAPABILITY_ADMIN, account=account)

    logger.warning(
        "auth_project_access_denied",
        project_id=project_id,
        key_prefix=get_key_prefix(api_key) if api_key else None,
    )
    raise UnauthorizedError("Invalid API key")


async def require_admin(
    platform: Annotated[Platform, Depends(get_platform)],
    x_admin_token: Annotated[str | None, Header()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> AdminAccount:
    """
    Dependency that requires a valid admin session token.

    Returns:
        The administrator account bound to the token

    Raises:
        UnauthorizedError: If the token is missing or unknown
    """
    token = x_admin_token or bearer_token(authorization)
    account = platform.keys.resolve_admin_token(token)

    structlog.contextvars.bind_contextvars(account_id=account.id)
    return account


async def require_owned_project(
    platform: Annotated[Platform, Depends(get_platform)],
    account: Annotated[AdminAccount, Depends(require_admin)],
    project_id: Annotated[str, Path(description="Project ID")],
) -> dict[str, Any]:
    """
    Dependency for project-scoped admin endpoints.

    Returns:
        The project record, if it is active and owned by the caller

    Raises:
        UnauthorizedError: If the admin token is invalid
        NotFoundError: If the project is absent or owned by another account
    """
    project = platform.tenants.get_owned_project(account.id, project_id)

    structlog.contextvars.bind_contextvars(project_id=project_id)
    return project


async def require_project_key(
    platform: Annotated[Platform, Depends(get_platform)],
    project_id: Annotated[str, Path(description="Project ID")],
    apikey: Annotated[str | None, Header()] = None,
    authorization: Annotated[str | None, Header()] = None,
    x_admin_token: Annotated[str | None, Header()] = None,
) -> CallContext:
    """Dependency for client endpoints: anon key, service key or admin token."""
    context = authorize_project_key(
        platform,
        project_id,
        apikey or bearer_token(authorization),
        admin_token=x_admin_token,
    )

    structlog.contextvars.bind_contextvars(project_id=project_id, capability=context.capability)
    return context


async def require_client_key(
    platform: Annotated[Platform, Depends(get_platform)],
    project_id: Annotated[str, Path(description="Project ID")],
    apikey: Annotated[str | None, Header()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> CallContext:
    """Dependency for end-user signup/login: anon or service key only."""
    context = authorize_project_key(
        platform,
        project_id,
        apikey or bearer_token(authorization),
        allow_admin=False,
    )

    structlog.contextvars.bind_contextvars(project_id=project_id, capability=context.capability)
    return context

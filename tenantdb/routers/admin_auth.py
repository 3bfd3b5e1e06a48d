"""Administrator session endpoints: login, logout, verify."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Header

from tenantdb.auth import AdminAccount
from tenantdb.dependencies import bearer_token, get_platform, require_admin
from tenantdb.models.responses import (
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    SuccessResponse,
    VerifyResponse,
)
from tenantdb.platform import Platform

logger = structlog.get_logger()
router = APIRouter(prefix="/auth", tags=["admin-auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
    },
    summary="Administrator login",
    description="Exchange an administrator password for a session token.",
)
async def login(
    body: LoginRequest,
    platform: Annotated[Platform, Depends(get_platform)],
) -> LoginResponse:
    account = platform.keys.authenticate_admin(body.password)
    token = platform.keys.issue_admin_token(account)

    return LoginResponse(token=token, account_id=account.id, account_name=account.name)


@router.post(
    "/logout",
    response_model=SuccessResponse,
    summary="Administrator logout",
    description="Revoke the presented session token. Succeeds for unknown tokens.",
)
async def logout(
    platform: Annotated[Platform, Depends(get_platform)],
    x_admin_token: Annotated[str | None, Header()] = None,
    authorization: Annotated[str | None, Header()] = None,
) -> SuccessResponse:
    logger.info("admin_logout")
    platform.keys.revoke_admin_token(x_admin_token or bearer_token(authorization))
    return SuccessResponse()


@router.get(
    "/verify",
    response_model=VerifyResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Verify session token",
)
async def verify(
    account: Annotated[AdminAccount, Depends(require_admin)],
) -> VerifyResponse:
    return VerifyResponse(valid=True, account_id=account.id, account_name=account.name)

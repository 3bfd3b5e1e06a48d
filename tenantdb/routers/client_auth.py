"""End-user signup and login for client applications."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends

from tenantdb.dependencies import CallContext, get_platform, require_client_key
from tenantdb.models.responses import AuthUserCreate, ClientAuthResponse, ErrorResponse
from tenantdb.platform import Platform

logger = structlog.get_logger()
router = APIRouter(tags=["client-auth"])


@router.post(
    "/projects/{project_id}/auth/signup",
    response_model=ClientAuthResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Sign up",
)
async def signup(
    credentials: AuthUserCreate,
    context: Annotated[CallContext, Depends(require_client_key)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> ClientAuthResponse:
    logger.info("client_signup", project_id=context.project_id)
    result = platform.users.signup(context.project_id, credentials.email, credentials.password)
    return ClientAuthResponse(**result)


@router.post(
    "/projects/{project_id}/auth/login",
    response_model=ClientAuthResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Log in",
)
async def login(
    credentials: AuthUserCreate,
    context: Annotated[CallContext, Depends(require_client_key)],
    platform: Annotated[Platform, Depends(get_platform)],
) -> ClientAuthResponse:
    logger.info("client_login", project_id=context.project_id)
    result = platform.users.login(context.project_id, credentials.email, credentials.password)
    return ClientAuthResponse(**result)

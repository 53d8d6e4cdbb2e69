"""
Auth API Endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
import structlog

from sr_dashboard.config import Settings, get_settings
from sr_dashboard.serving.api.auth import (
    LoginGuard,
    authenticate,
    create_access_token,
    get_login_guard,
)
from sr_dashboard.serving.api.schemas import LoginRequest, TokenResponse

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post("/auth/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    settings: Settings = Depends(get_settings),
    guard: LoginGuard = Depends(get_login_guard),
) -> TokenResponse:
    """Exchange a role password for a bearer token"""
    client = request.client.host if request.client else "unknown"

    retry_after = await guard.retry_after(client)
    if retry_after:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many failed login attempts",
            headers={"Retry-After": str(retry_after)},
        )

    role = authenticate(body.password, settings)
    if role is None:
        locked = await guard.record_failure(client)
        logger.info("Login failed", client=client, locked=locked)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    await guard.reset(client)
    token, expires_in = create_access_token(role, settings)
    logger.info("Login succeeded", client=client, role=role.value)
    return TokenResponse(access_token=token, role=role.value, expires_in=expires_in)

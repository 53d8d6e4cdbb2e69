"""
Authentication

Password login against environment-sourced secrets issues a signed JWT that
carries a role. Dashboard reads need the viewer role, exports need admin.
Repeated login failures lock the client out for a fixed period.
"""

import asyncio
import hmac
import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from sr_dashboard.config import Settings, get_settings

logger = structlog.get_logger(__name__)

security = HTTPBearer(auto_error=False)


class Role(str, Enum):
    VIEWER = "viewer"
    ADMIN = "admin"

    def grants(self, required: "Role") -> bool:
        """Admin grants everything viewer grants"""
        return self is Role.ADMIN or self is required


def create_access_token(role: Role, settings: Settings) -> Tuple[str, int]:
    """
    Sign a token for role.

    Returns:
        (token, lifetime in seconds)
    """
    lifetime = timedelta(hours=settings.security.jwt_expiration_hours)
    now = datetime.now(timezone.utc)
    payload = {
        "sub": role.value,
        "role": role.value,
        "iat": now,
        "exp": now + lifetime,
    }
    token = jwt.encode(
        payload,
        settings.security.jwt_secret_key.get_secret_value(),
        algorithm=settings.security.jwt_algorithm,
    )
    return token, int(lifetime.total_seconds())


def decode_role(token: str, settings: Settings) -> Role:
    """
    Verify a token and return its role.

    Raises:
        HTTPException: 401 for an invalid, expired or role-less token
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            token,
            settings.security.jwt_secret_key.get_secret_value(),
            algorithms=[settings.security.jwt_algorithm],
        )
        return Role(payload.get("role"))
    except (JWTError, ValueError) as exc:
        raise credentials_exception from exc


def authenticate(password: str, settings: Settings) -> Optional[Role]:
    """Match a password against the configured role secrets"""
    candidates = (
        (Role.ADMIN, settings.security.admin_password),
        (Role.VIEWER, settings.security.viewer_password),
    )
    for role, secret in candidates:
        if secret is None:
            continue
        if hmac.compare_digest(password.encode(), secret.get_secret_value().encode()):
            return role
    return None


async def get_current_role(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> Role:
    """Role of the caller; every caller is admin when auth is disabled"""
    if not settings.security.auth_enabled:
        return Role.ADMIN
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_role(credentials.credentials, settings)


def require_role(required: Role) -> Callable:
    """Dependency factory rejecting callers without the required role"""

    async def dependency(role: Role = Depends(get_current_role)) -> Role:
        if not role.grants(required):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{required.value} role required",
            )
        return role

    return dependency


require_viewer = require_role(Role.VIEWER)
require_admin = require_role(Role.ADMIN)


class LoginGuard:
    """
    Per-client failure counter with a fixed lockout.

    After max_attempts failures, each within lockout_seconds of the previous
    one, the client is refused until lockout_seconds have passed. A success
    clears the count; quiet clients and expired lockouts are forgotten.
    """

    def __init__(self, max_attempts: int, lockout_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self._clock = clock
        # client -> (consecutive failures, time of the last one)
        self._failures: Dict[str, Tuple[int, float]] = {}
        self._locked_until: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        stale = [c for c, (_, last) in self._failures.items() if now - last >= self.lockout_seconds]
        for client in stale:
            del self._failures[client]
        expired = [c for c, until in self._locked_until.items() if until <= now]
        for client in expired:
            del self._locked_until[client]

    def tracked_clients(self) -> int:
        """Clients with a failure count or lockout still held in memory"""
        return len(self._failures.keys() | self._locked_until.keys())

    async def retry_after(self, client: str) -> int:
        """Seconds until client may retry, 0 when not locked"""
        async with self._lock:
            now = self._clock()
            self._prune(now)
            until = self._locked_until.get(client)
            if until is None:
                return 0
            return max(1, int(until - now + 0.999))

    async def record_failure(self, client: str) -> bool:
        """Count a failure; True when it locked the client out"""
        async with self._lock:
            now = self._clock()
            self._prune(now)
            count = self._failures.get(client, (0, now))[0] + 1
            if count >= self.max_attempts:
                self._failures.pop(client, None)
                self._locked_until[client] = now + self.lockout_seconds
                logger.warning("Login locked out", client=client, lockout_seconds=self.lockout_seconds)
                return True
            self._failures[client] = (count, now)
            return False

    async def reset(self, client: str) -> None:
        async with self._lock:
            self._failures.pop(client, None)
            self._locked_until.pop(client, None)


_login_guard: Optional[LoginGuard] = None


def get_login_guard() -> LoginGuard:
    global _login_guard
    if _login_guard is None:
        settings = get_settings()
        _login_guard = LoginGuard(
            max_attempts=settings.security.max_login_attempts,
            lockout_seconds=settings.security.lockout_seconds,
        )
    return _login_guard

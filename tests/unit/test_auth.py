"""
Unit Tests - Authentication
"""
import pytest
from fastapi import HTTPException

from sr_dashboard.config import Settings
from sr_dashboard.config.settings import SecuritySettings
from sr_dashboard.serving.api.auth import (
    LoginGuard,
    Role,
    authenticate,
    create_access_token,
    decode_role,
)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        security=SecuritySettings(
            JWT_SECRET_KEY="unit-test-secret",
            AUTH_ENABLED=True,
            ADMIN_PASSWORD="admin-pass",
            VIEWER_PASSWORD="viewer-pass",
        ),
    )


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestTokens:
    """Tests for token issue and verification"""

    def test_round_trip(self, settings):
        token, expires_in = create_access_token(Role.VIEWER, settings)

        assert decode_role(token, settings) is Role.VIEWER
        assert expires_in == settings.security.jwt_expiration_hours * 3600

    def test_foreign_signature_is_rejected(self, settings):
        other = Settings(security=SecuritySettings(JWT_SECRET_KEY="someone-else"))
        token, _ = create_access_token(Role.ADMIN, other)

        with pytest.raises(HTTPException) as exc_info:
            decode_role(token, settings)

        assert exc_info.value.status_code == 401

    def test_garbage_token_is_rejected(self, settings):
        with pytest.raises(HTTPException):
            decode_role("not-a-token", settings)

    def test_admin_grants_viewer(self):
        assert Role.ADMIN.grants(Role.VIEWER)
        assert not Role.VIEWER.grants(Role.ADMIN)


class TestAuthenticate:
    """Tests for password matching"""

    def test_roles_by_password(self, settings):
        assert authenticate("admin-pass", settings) is Role.ADMIN
        assert authenticate("viewer-pass", settings) is Role.VIEWER
        assert authenticate("wrong", settings) is None

    def test_unset_passwords_never_match(self):
        settings = Settings(security=SecuritySettings(ADMIN_PASSWORD=None, VIEWER_PASSWORD=None))

        assert authenticate("", settings) is None


class TestLoginGuard:
    """Tests for login lockout"""

    async def test_locks_after_max_attempts(self):
        clock = FakeClock()
        guard = LoginGuard(max_attempts=3, lockout_seconds=60, clock=clock)

        assert not await guard.record_failure("10.0.0.1")
        assert not await guard.record_failure("10.0.0.1")
        assert await guard.record_failure("10.0.0.1")

        assert await guard.retry_after("10.0.0.1") == 60
        assert await guard.retry_after("10.0.0.2") == 0

    async def test_lock_expires(self):
        clock = FakeClock()
        guard = LoginGuard(max_attempts=1, lockout_seconds=60, clock=clock)
        await guard.record_failure("10.0.0.1")

        clock.now += 59.5
        assert await guard.retry_after("10.0.0.1") == 1

        clock.now += 1
        assert await guard.retry_after("10.0.0.1") == 0

    async def test_success_resets_the_count(self):
        guard = LoginGuard(max_attempts=2, lockout_seconds=60, clock=FakeClock())

        await guard.record_failure("10.0.0.1")
        await guard.reset("10.0.0.1")

        assert not await guard.record_failure("10.0.0.1")

    async def test_quiet_clients_are_forgotten(self):
        clock = FakeClock()
        guard = LoginGuard(max_attempts=3, lockout_seconds=60, clock=clock)
        for octet in range(1, 6):
            await guard.record_failure(f"10.0.0.{octet}")
        await guard.record_failure("10.0.0.9")
        await guard.record_failure("10.0.0.9")
        await guard.record_failure("10.0.0.9")
        assert guard.tracked_clients() == 6

        clock.now += 60

        assert await guard.retry_after("10.0.0.9") == 0
        assert guard.tracked_clients() == 0

    async def test_spaced_out_failures_do_not_lock(self):
        clock = FakeClock()
        guard = LoginGuard(max_attempts=2, lockout_seconds=60, clock=clock)

        assert not await guard.record_failure("10.0.0.1")
        clock.now += 61

        assert not await guard.record_failure("10.0.0.1")
        assert await guard.record_failure("10.0.0.1")

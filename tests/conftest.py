"""
Shared pytest fixtures for the pwvault test suite.

Time is injected through ``FakeClock`` so expiry can be stepped without
sleeping; the auth service is an ``AsyncMock``.
"""
import base64
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from pwvault.conf import SessionConfig
from pwvault.models import LoginResult, SecretRecord
from pwvault.session import MemoryCredentialCache, SessionManager
from pwvault.vault import EncryptionEngine, EngineConfig

DEVICE_KEY = bytes(range(32))
IV_BYTES = bytes(range(16, 32))
IV_B64 = base64.b64encode(IV_BYTES).decode("ascii")


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1) -> None:
        self.now += timedelta(seconds=seconds)


def make_login_result(expire_minutes: int = 30, user_id: str = "user-1") -> LoginResult:
    return LoginResult(
        user_id=user_id,
        role="member",
        sql_token="sql-token",
        api_token="api-token",
        expire_minutes=expire_minutes,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine():
    return EncryptionEngine(EngineConfig(device_key=DEVICE_KEY))


@pytest.fixture
def cache():
    return MemoryCredentialCache()


@pytest.fixture
def auth():
    provider = AsyncMock()
    provider.login = AsyncMock(return_value=make_login_result())
    provider.logout = AsyncMock(return_value=None)
    return provider


@pytest.fixture
def manager(auth, cache, engine, clock):
    # long interval: tests step the countdown by hand
    mgr = SessionManager(
        auth, cache, engine=engine,
        config=SessionConfig(tick_interval=3600), clock=clock,
    )
    yield mgr
    mgr.shutdown()


@pytest.fixture
def record():
    return SecretRecord(
        id="rec-1",
        field_a="Mail",
        field_b="alice@example.com",
        field_c="s3cr3t-pässword",
        owner_id="user-1",
    )

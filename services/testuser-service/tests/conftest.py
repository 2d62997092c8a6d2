from __future__ import annotations

from typing import Any, Callable

import fakeredis
import pytest

from testuser.config import Settings
from testuser.domain.account import Environment
from testuser.domain.contracts import Registration
from testuser.errors import IdentityProviderError
from testuser.store import AccountStore


class FakeIdentityProvider:
    """In-memory IdP automation API recording every call."""

    def __init__(self) -> None:
        self.created: list[tuple[Environment, str, str]] = []
        self.authenticated: list[tuple[Environment, str, str]] = []
        self.certified: list[tuple[Environment, str, str]] = []
        self.cancelled: list[tuple[Environment, dict[str, Any]]] = []
        self.on_create: Callable[[str], None] | None = None
        self.fail_create = False
        self.fail_authenticate = False
        self.certify_error: Exception | None = None

    async def create_user(self, env: Environment, email: str, password: str) -> Registration:
        if self.fail_create:
            raise IdentityProviderError("/wsapi/stage_user was rejected: throttled")
        self.created.append((env, email, password))
        if self.on_create is not None:
            self.on_create(email)
        return Registration(token=f"token-{len(self.created)}", context={"session": email})

    async def authenticate_user(self, env: Environment, email: str, password: str) -> None:
        if self.fail_authenticate:
            raise IdentityProviderError("/wsapi/authenticate_user was rejected: bad password")
        self.authenticated.append((env, email, password))

    async def certify_key(self, env: Environment, email: str, public_key: str) -> str:
        if self.certify_error is not None:
            raise self.certify_error
        self.certified.append((env, email, public_key))
        return f"cert.{len(self.certified)}"

    async def cancel_account(self, env: Environment, context: dict[str, Any]) -> dict[str, Any]:
        self.cancelled.append((env, context))
        return {"success": True}


class ManualClock:
    """Wall clock the tests move by hand."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings() -> Settings:
    return Settings(
        key_prefix="ptu",
        email_domain="personatestuser.org",
        password_length=16,
        staging_ttl_seconds=3600,
        verify_initial_interval_ms=10,
        verify_deadline_ms=1000,
        verify_max_interval_ms=100,
        keypair_algorithm="RS",
        keypair_keysize=2048,
        idp_prod_url="https://login.persona.org",
        idp_stage_url="https://login.anosrep.org",
        idp_dev_url="https://login.dev.anosrep.org",
    )


@pytest.fixture
def redis_client() -> fakeredis.FakeAsyncRedis:
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store(redis_client, settings) -> AccountStore:
    return AccountStore(redis_client, settings)


@pytest.fixture
def idp() -> FakeIdentityProvider:
    return FakeIdentityProvider()

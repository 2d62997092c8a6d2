"""Account lifecycle orchestration: allocation, registration and verification."""

from __future__ import annotations

import json
import logging
from typing import Any

from testuser_schemas import UnverifiedAccount, VerifiedAccount

from ..config import Settings, get_settings
from ..errors import AuthMismatch, IdentityProviderError, RegistrationError, VerificationTimeout
from ..idp import IdentityProvider
from ..metrics import ACCOUNTS_ISSUED, ACCOUNTS_SWEPT, VERIFICATION_TIMEOUTS
from ..notifier import VerificationNotifier
from ..security.credentials import PasswordChecker, PlainPasswordChecker
from ..store import AccountStore
from .account import Account, Environment, LifecycleState
from .assertions import AssertionIssuer
from .availability import AvailabilityTable
from .waiter import WaitResult, wait_until

logger = logging.getLogger(__name__)


class AccountLifecycleManager:
    """Hands out disposable test accounts, optionally waiting for verification."""

    def __init__(
        self,
        store: AccountStore,
        idp: IdentityProvider,
        *,
        availability: AvailabilityTable | None = None,
        notifier: VerificationNotifier | None = None,
        issuer: AssertionIssuer | None = None,
        password_checker: PasswordChecker | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Wire collaborators; ``notifier`` events feed the availability table."""
        self._store = store
        self._idp = idp
        self._settings = settings or get_settings()
        self._availability = availability or AvailabilityTable()
        self._password_checker = password_checker or PlainPasswordChecker()
        self._issuer = issuer or AssertionIssuer(
            store, idp, self._settings, password_checker=self._password_checker
        )
        if notifier is not None:
            notifier.on_ready(self._availability.mark_ready)
            notifier.on_error(self._on_notifier_error)

    @property
    def availability(self) -> AvailabilityTable:
        return self._availability

    async def get_unverified_account(self, env: Environment) -> UnverifiedAccount:
        """Stage a new account and return it with its verification token."""
        account = await self._register(env, do_verify=False)
        self._transition(account.email, LifecycleState.skipped)
        ACCOUNTS_ISSUED.labels(env=env.value, kind="unverified").inc()
        return UnverifiedAccount(
            email=account.email,
            password=account.password,
            token=account.token,
            expires_at=account.expires_at,
            env=account.env.value,
        )

    async def get_verified_account(self, env: Environment) -> VerifiedAccount:
        """Stage a new account and wait for the verifier to complete it.

        Raises
        ------
        VerificationTimeout
            When no ready event arrives before the configured deadline. The
            remote account may still complete verification afterwards.
        """
        account = await self._register(env, do_verify=True)
        email = account.email
        self._transition(email, LifecycleState.awaiting)

        result = await wait_until(
            lambda: self._availability.is_ready(email),
            initial_interval_ms=self._settings.verify_initial_interval_ms,
            deadline_ms=self._settings.verify_deadline_ms,
            max_interval_ms=self._settings.verify_max_interval_ms,
        )
        if result is WaitResult.timed_out:
            self._transition(email, LifecycleState.timed_out)
            VERIFICATION_TIMEOUTS.labels(env=env.value).inc()
            raise VerificationTimeout(email, self._settings.verify_deadline_ms)

        verified = await self._store.promote(email)
        self._transition(email, LifecycleState.ready)
        ACCOUNTS_ISSUED.labels(env=env.value, kind="verified").inc()
        return VerifiedAccount(
            email=verified.email,
            password=verified.password,
            expires_at=verified.expires_at,
            env=verified.env.value,
        )

    async def cancel_account(self, email: str, password: str) -> dict[str, Any]:
        """Cancel the remote account and forget it locally."""
        account = await self._store.get(email)
        if account is None or not self._password_checker.matches(account, password):
            raise AuthMismatch("username and password do not match")

        context = json.loads(account.context) if account.context else {}
        result = await self._idp.cancel_account(account.env, context)
        await self._store.evict(email)
        self._availability.discard(email)
        logger.info("cancelled %s", email)
        return result

    async def issue_assertion(
        self,
        email: str | None,
        password: str | None,
        env: Environment | str | None,
        audience: str | None,
        duration_ms: int | None = None,
    ) -> str:
        return await self._issuer.issue(email, password, env, audience, duration_ms)

    async def sweep_expired(self) -> list[str]:
        """Remove expired accounts from the store and the availability table."""
        swept = await self._store.sweep_expired()
        for email in swept:
            self._availability.discard(email)
        if swept:
            ACCOUNTS_SWEPT.inc(len(swept))
            logger.info("swept %d expired account(s)", len(swept))
        return swept

    async def _register(self, env: Environment, *, do_verify: bool) -> Account:
        account = await self._store.allocate(env, do_verify=do_verify)
        self._transition(account.email, LifecycleState.allocated)
        try:
            registration = await self._idp.create_user(env, account.email, account.password)
        except IdentityProviderError as exc:
            # Left in staging; the sweeper reclaims it.
            self._transition(account.email, LifecycleState.failed)
            raise RegistrationError(f"could not register {account.email}: {exc}") from exc

        account.token = registration.token
        account.context = json.dumps(registration.context)
        await self._store.set_fields(
            account.email, {"token": account.token, "context": account.context}
        )
        self._transition(account.email, LifecycleState.registered)
        return account

    def _transition(self, email: str, state: LifecycleState) -> None:
        logger.info("account %s -> %s", email, state.value)

    def _on_notifier_error(self, detail: str) -> None:
        logger.warning("verification notifier error: %s", detail)

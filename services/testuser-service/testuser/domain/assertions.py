"""Minting backed identity assertions for existing test accounts."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from ..config import Settings
from ..errors import CredentialMismatch, MissingParameter
from ..idp import IdentityProvider
from ..metrics import ASSERTIONS_ISSUED
from ..security.credentials import PasswordChecker, PlainPasswordChecker
from ..security.keys import bundle_certificates, generate_keypair, sign_assertion
from ..store import AccountStore
from .account import Account, Environment
from .contracts import Keypair

logger = logging.getLogger(__name__)


class AssertionIssuer:
    """Generates keys, gets them certified and signs audience-scoped assertions."""

    def __init__(
        self,
        store: AccountStore,
        idp: IdentityProvider,
        settings: Settings,
        *,
        password_checker: PasswordChecker | None = None,
    ) -> None:
        self._store = store
        self._idp = idp
        self._settings = settings
        self._password_checker = password_checker or PlainPasswordChecker()

    async def issue(
        self,
        email: str | None,
        password: str | None,
        env: Environment | str | None,
        audience: str | None,
        duration_ms: int | None = None,
    ) -> str:
        """Return a ``cert~assertion`` bundle for the account.

        Parameters
        ----------
        email, password:
            Credentials of an account previously handed out by this service.
        env:
            IdP deployment the account lives in.
        audience:
            Relying party the assertion is scoped to.
        duration_ms:
            Assertion lifetime; defaults to the configured duration (1h).

        Raises
        ------
        MissingParameter
            When any input is absent or ``env`` is unknown. Nothing is touched.
        CredentialMismatch
            When the account is unknown or the password does not match.
        IdentityProviderError
            Propagated unchanged from authentication or certification.
        """
        if not (email and password and env and audience):
            raise MissingParameter("email, password, env and audience are required")
        try:
            environment = Environment(env)
        except ValueError as exc:
            raise MissingParameter(f"unknown environment {env!r}") from exc
        duration = timedelta(milliseconds=duration_ms or self._settings.assertion_duration_ms)

        account = await self._store.get(email)
        if account is None or not self._password_checker.matches(account, password):
            raise CredentialMismatch("email and password don't match")

        keypair = await self._keypair_for(account)

        await self._idp.authenticate_user(environment, email, password)
        certificate = await self._idp.certify_key(environment, email, keypair.public_key)
        assertion = sign_assertion(
            {},
            audience=audience,
            expires_at=datetime.now(timezone.utc) + duration,
            secret_key=keypair.secret_key,
            algorithm=keypair.algorithm,
        )
        ASSERTIONS_ISSUED.labels(env=environment.value).inc()
        logger.info("issued assertion for %s (audience %s)", email, audience)
        return bundle_certificates([certificate], assertion)

    async def _keypair_for(self, account: Account) -> Keypair:
        """Reuse the stored keypair or generate one; a concurrent winner's pair is kept."""
        if account.has_keypair:
            return Keypair(
                algorithm=account.key_algorithm,
                public_key=account.public_key,
                secret_key=account.secret_key,
            )
        generated = await asyncio.to_thread(
            generate_keypair, self._settings.keypair_algorithm, self._settings.keypair_keysize
        )
        keypair = await self._store.claim_keypair(account.email, generated)
        if keypair is not generated:
            logger.debug("reusing keypair stored concurrently for %s", account.email)
        return keypair

"""Error taxonomy surfaced by the test user service."""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for every failure a public operation can resolve with."""


class StoreError(ServiceError):
    """The underlying Redis operation failed."""


class AccountNotFound(ServiceError):
    """The account record no longer exists in the store."""


class RegistrationError(ServiceError):
    """The IdP refused or failed to create the remote account."""


class VerificationTimeout(ServiceError):
    """Verification did not complete before the wait deadline.

    The account stays pending and may still verify later; callers can retry
    with a fresh account.
    """

    def __init__(self, email: str, deadline_ms: int) -> None:
        super().__init__(f"timed out waiting for {email} after {deadline_ms}ms")
        self.email = email
        self.deadline_ms = deadline_ms


class AuthMismatch(ServiceError):
    """Supplied password does not match the stored one."""


class CredentialMismatch(AuthMismatch):
    """Supplied credentials do not match when requesting an assertion."""


class MissingParameter(ServiceError):
    """Caller input is missing or invalid."""


class IdentityProviderError(ServiceError):
    """A call to the IdP automation API failed."""

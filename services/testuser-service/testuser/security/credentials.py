"""Password checks guarding cancellation and assertion requests."""

from __future__ import annotations

from typing import Protocol

from ..domain.account import Account


class PasswordChecker(Protocol):
    def matches(self, account: Account, supplied: str) -> bool:
        ...


class PlainPasswordChecker:
    """Plain equality against the stored test password.

    Accounts are disposable test fixtures, so nothing stronger is required.
    """

    def matches(self, account: Account, supplied: str) -> bool:
        return bool(supplied) and account.password == supplied

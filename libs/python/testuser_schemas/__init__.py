"""Shared schema exports."""

from .account import UnverifiedAccount, VerifiedAccount
from .events import VerificationReady

__all__ = [
    "UnverifiedAccount",
    "VerifiedAccount",
    "VerificationReady",
]

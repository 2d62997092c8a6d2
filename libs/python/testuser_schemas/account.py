"""Account views handed back to callers of the test user service.

Emails are generated by the service itself and may use a domain without a
dot (``localhost`` in development), so they are carried as plain strings.
"""

from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel


class UnverifiedAccount(BaseModel):
    """Account still awaiting verification; carries the token to complete it."""

    email: str
    password: str
    token: str
    expires_at: datetime
    env: str


class VerifiedAccount(BaseModel):
    email: str
    password: str
    expires_at: datetime
    env: str

"""Verification event contracts published by the external verifier."""

from __future__ import annotations

from pydantic import BaseModel, Field


class VerificationReady(BaseModel):
    email: str = Field(min_length=1)
    token: str | None = None
    env: str | None = None

"""Domain-level contracts exchanged with external collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class Registration:
    """Outcome of staging a user with the IdP."""

    token: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Keypair:
    """Serialised signing keypair; ``algorithm`` is the JWS algorithm name."""

    algorithm: str
    public_key: str
    secret_key: str

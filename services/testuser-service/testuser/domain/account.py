from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping


class Environment(str, Enum):
    """IdP deployments test accounts can be issued against."""

    prod = "prod"
    stage = "stage"
    dev = "dev"


class LifecycleState(str, Enum):
    allocated = "allocated"
    registered = "registered"
    awaiting = "awaiting"
    skipped = "skipped"
    ready = "ready"
    failed = "failed"
    timed_out = "timed_out"


def to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def from_ms(value: int | str) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


@dataclass(slots=True)
class Account:
    """Disposable test identity as persisted in the account hash."""

    email: str
    password: str
    env: Environment
    created_at: datetime
    expires_at: datetime
    do_verify: bool = False
    context: str | None = None
    token: str | None = None
    verified_at: datetime | None = None
    public_key: str | None = None
    secret_key: str | None = None
    key_algorithm: str | None = None

    @property
    def verified(self) -> bool:
        return self.verified_at is not None

    @property
    def has_keypair(self) -> bool:
        return bool(self.public_key and self.secret_key and self.key_algorithm)

    def to_hash(self) -> dict[str, str]:
        """Flatten the account into the string mapping stored in Redis."""
        fields = {
            "email": self.email,
            "password": self.password,
            "env": self.env.value,
            "created_at": str(to_ms(self.created_at)),
            "expires_at": str(to_ms(self.expires_at)),
            "do_verify": "yes" if self.do_verify else "no",
        }
        optional = {
            "context": self.context,
            "token": self.token,
            "verified_at": str(to_ms(self.verified_at)) if self.verified_at else None,
            "public_key": self.public_key,
            "secret_key": self.secret_key,
            "key_algorithm": self.key_algorithm,
        }
        fields.update({name: value for name, value in optional.items() if value is not None})
        return fields

    @classmethod
    def from_hash(cls, data: Mapping[str, str]) -> "Account":
        """Rebuild an account from a Redis hash (``decode_responses=True``)."""
        verified_at = data.get("verified_at")
        return cls(
            email=data["email"],
            password=data["password"],
            env=Environment(data["env"]),
            created_at=from_ms(data["created_at"]),
            expires_at=from_ms(data["expires_at"]),
            do_verify=data.get("do_verify") == "yes",
            context=data.get("context"),
            token=data.get("token"),
            verified_at=from_ms(verified_at) if verified_at else None,
            public_key=data.get("public_key"),
            secret_key=data.get("secret_key"),
            key_algorithm=data.get("key_algorithm"),
        )

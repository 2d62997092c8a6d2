"""Friendly local-parts and random passwords for generated accounts."""

from __future__ import annotations

import secrets
import string

NAMES = (
    "abel", "abreu", "acevedo", "adrian", "aguilera", "alexis", "andy",
    "angelo", "anthony", "ashley", "avellanet", "blass", "blazquez", "cancel",
    "carlos", "cesar", "charlie", "daniel", "didier", "edward", "farrait",
    "fernando", "galindo", "garcia", "gomez", "grullon", "hernandez",
    "johnny", "jonathan", "lopez", "lozada", "martin", "masso", "melendez",
    "miguel", "montenegro", "nefty", "olivares", "oscar", "ralphy", "rawy",
    "ray", "raymond", "rene", "reyes", "ricky", "robert", "robi", "rodriguez",
    "rosa", "rossello", "roy", "ruben", "ruiz", "sallaberry", "serbia",
    "sergio", "talamantez", "torres", "weider", "xavier",
)

PASSWORD_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits


def random_name() -> str:
    return secrets.choice(NAMES)


def next_email(name: str, sequence: int, domain: str) -> str:
    """Build ``<name><sequence>@<domain>``; the sequence keeps it unique."""
    return f"{name}{sequence}@{domain}"


def random_password(length: int = 16) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))

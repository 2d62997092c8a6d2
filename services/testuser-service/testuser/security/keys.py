"""Keypair generation and backed-assertion signing for test accounts."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from ..domain.contracts import Keypair

_EC_CURVES = {
    256: (ec.SECP256R1, "ES256"),
    384: (ec.SECP384R1, "ES384"),
}


def generate_keypair(algorithm: str, keysize: int) -> Keypair:
    """Create a fresh keypair serialised as PEM strings.

    Parameters
    ----------
    algorithm:
        ``RS`` for RSA or ``ES`` for elliptic curve keys.
    keysize:
        RSA modulus size in bits, or the curve size (256/384) for ``ES``.

    Returns
    -------
    Keypair
        PEM-encoded public and private halves plus the JWS algorithm name.

    Raises
    ------
    ValueError
        When the algorithm/keysize combination is not supported.
    """
    if algorithm == "RS":
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=keysize)
        jws_algorithm = "RS256"
    elif algorithm == "ES":
        if keysize not in _EC_CURVES:
            raise ValueError(f"unsupported EC key size {keysize}")
        curve, jws_algorithm = _EC_CURVES[keysize]
        private_key = ec.generate_private_key(curve())
    else:
        raise ValueError(f"unsupported keypair algorithm {algorithm!r}")

    secret_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return Keypair(
        algorithm=jws_algorithm,
        public_key=public_pem.decode("ascii"),
        secret_key=secret_pem.decode("ascii"),
    )


def sign_assertion(
    claims: dict[str, Any],
    *,
    audience: str,
    expires_at: datetime,
    secret_key: str,
    algorithm: str,
) -> str:
    """Sign an audience-scoped assertion that expires at ``expires_at``."""
    payload: dict[str, Any] = {
        **claims,
        "aud": audience,
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def bundle_certificates(certificates: Iterable[str], assertion: str) -> str:
    """Join the certificate chain and the assertion into a backed assertion."""
    return "~".join([*certificates, assertion])

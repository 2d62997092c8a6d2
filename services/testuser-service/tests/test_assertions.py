"""Tests for keypair handling and backed assertion issuance."""

from __future__ import annotations

import asyncio
import dataclasses
import time
from unittest.mock import patch

import jwt
import pytest

from testuser.domain.account import Environment
from testuser.domain.assertions import AssertionIssuer
from testuser.errors import CredentialMismatch, IdentityProviderError, MissingParameter
from testuser.security.keys import bundle_certificates, generate_keypair

AUDIENCE = "https://rp.personatestuser.org"


@pytest.fixture
def issuer(store, idp, settings) -> AssertionIssuer:
    return AssertionIssuer(store, idp, settings)


@pytest.mark.asyncio
async def test_missing_audience_fails_before_any_keypair(issuer, store, idp):
    account = await store.allocate(Environment.dev)

    with patch("testuser.domain.assertions.generate_keypair") as keygen:
        with pytest.raises(MissingParameter):
            await issuer.issue(account.email, account.password, "dev", None)
        keygen.assert_not_called()

    assert not (await store.get(account.email)).has_keypair
    assert idp.authenticated == []


@pytest.mark.asyncio
async def test_unknown_environment_is_missing_parameter(issuer, store):
    account = await store.allocate(Environment.dev)
    with pytest.raises(MissingParameter):
        await issuer.issue(account.email, account.password, "qa", AUDIENCE)


@pytest.mark.asyncio
async def test_wrong_password_is_credential_mismatch(issuer, store, idp):
    account = await store.allocate(Environment.dev)
    with pytest.raises(CredentialMismatch):
        await issuer.issue(account.email, "wrong", "dev", AUDIENCE)
    with pytest.raises(CredentialMismatch):
        await issuer.issue("nobody1@personatestuser.org", "wrong", "dev", AUDIENCE)
    assert idp.authenticated == []


@pytest.mark.asyncio
async def test_issue_returns_certificate_backed_assertion(issuer, store, idp):
    account = await store.allocate(Environment.dev)

    bundle = await issuer.issue(account.email, account.password, "dev", AUDIENCE, 60_000)

    certificate, assertion = bundle.split("~")
    assert certificate == "cert.1"
    assert idp.authenticated == [(Environment.dev, account.email, account.password)]

    stored = await store.get(account.email)
    assert stored.has_keypair
    assert idp.certified == [(Environment.dev, account.email, stored.public_key)]

    claims = jwt.decode(assertion, stored.public_key, algorithms=["RS256"], audience=AUDIENCE)
    assert claims["exp"] == pytest.approx(time.time() + 60, abs=5)


@pytest.mark.asyncio
async def test_second_assertion_reuses_stored_keypair(issuer, store, idp):
    account = await store.allocate(Environment.dev)
    await issuer.issue(account.email, account.password, Environment.dev, AUDIENCE)
    first_key = (await store.get(account.email)).public_key

    with patch("testuser.domain.assertions.generate_keypair") as keygen:
        await issuer.issue(account.email, account.password, Environment.dev, AUDIENCE)
        keygen.assert_not_called()

    assert (await store.get(account.email)).public_key == first_key
    assert [entry[2] for entry in idp.certified] == [first_key, first_key]


@pytest.mark.asyncio
async def test_certification_failure_propagates_unchanged(issuer, store, idp):
    account = await store.allocate(Environment.dev)
    failure = IdentityProviderError("/wsapi/cert_key failed against dev: 503")
    idp.certify_error = failure

    with pytest.raises(IdentityProviderError) as excinfo:
        await issuer.issue(account.email, account.password, "dev", AUDIENCE)

    assert excinfo.value is failure
    # keys were persisted before certification was attempted
    assert (await store.get(account.email)).has_keypair


@pytest.mark.asyncio
async def test_elliptic_curve_keys(store, idp, settings):
    issuer = AssertionIssuer(
        store, idp, dataclasses.replace(settings, keypair_algorithm="ES", keypair_keysize=256)
    )
    account = await store.allocate(Environment.prod)

    bundle = await issuer.issue(account.email, account.password, "prod", AUDIENCE)

    stored = await store.get(account.email)
    assert stored.key_algorithm == "ES256"
    jwt.decode(bundle.split("~")[1], stored.public_key, algorithms=["ES256"], audience=AUDIENCE)


def test_generate_keypair_rejects_unknown_algorithm():
    with pytest.raises(ValueError):
        generate_keypair("DS", 256)
    with pytest.raises(ValueError):
        generate_keypair("ES", 521)


def test_bundle_joins_chain_and_assertion():
    assert bundle_certificates(["a", "b"], "c") == "a~b~c"


@pytest.mark.asyncio
async def test_concurrent_issues_certify_the_same_keypair(store, idp, settings):
    issuer = AssertionIssuer(
        store, idp, dataclasses.replace(settings, keypair_algorithm="ES", keypair_keysize=256)
    )
    account = await store.allocate(Environment.dev)

    bundles = await asyncio.gather(
        *(issuer.issue(account.email, account.password, "dev", AUDIENCE) for _ in range(3))
    )

    stored = await store.get(account.email)
    assert {entry[2] for entry in idp.certified} == {stored.public_key}
    for bundle in bundles:
        jwt.decode(bundle.split("~")[1], stored.public_key, algorithms=["ES256"], audience=AUDIENCE)

"""Clients for the IdP automation API that test accounts are registered with."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from .config import Settings
from .domain.account import Environment
from .domain.contracts import Registration
from .errors import IdentityProviderError

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    """Operations the lifecycle manager and assertion issuer rely on."""

    async def create_user(self, env: Environment, email: str, password: str) -> Registration:
        ...

    async def authenticate_user(self, env: Environment, email: str, password: str) -> None:
        ...

    async def certify_key(self, env: Environment, email: str, public_key: str) -> str:
        ...

    async def cancel_account(self, env: Environment, context: dict[str, Any]) -> dict[str, Any]:
        ...


class HttpIdentityProvider:
    """IdP automation client speaking the ``/wsapi`` JSON endpoints.

    One shared ``httpx.AsyncClient`` serves every environment; the base URL is
    picked per call from :class:`~testuser.config.Settings`. Calls are never
    retried here.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._client = client or httpx.AsyncClient(timeout=settings.idp_timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, env: Environment, path: str, payload: dict[str, Any]) -> httpx.Response:
        url = f"{self._settings.idp_base_url(env)}{path}"
        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("IdP call %s against %s failed: %s", path, env.value, exc)
            raise IdentityProviderError(f"{path} failed against {env.value}: {exc}") from exc
        return response

    def _json(self, response: httpx.Response, path: str) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise IdentityProviderError(f"{path} returned a non-JSON body") from exc
        if not isinstance(body, dict) or body.get("success") is False:
            reason = body.get("reason") if isinstance(body, dict) else None
            raise IdentityProviderError(f"{path} was rejected: {reason or 'unknown reason'}")
        return body

    async def create_user(self, env: Environment, email: str, password: str) -> Registration:
        """Stage ``email`` with the IdP and return its verification token."""
        path = "/wsapi/stage_user"
        body = self._json(await self._post(env, path, {"email": email, "pass": password}), path)
        token = body.get("token")
        if not token:
            raise IdentityProviderError(f"{path} did not return a verification token")
        return Registration(token=token, context=body.get("context") or {})

    async def authenticate_user(self, env: Environment, email: str, password: str) -> None:
        path = "/wsapi/authenticate_user"
        payload = {"email": email, "pass": password, "ephemeral": False}
        self._json(await self._post(env, path, payload), path)

    async def certify_key(self, env: Environment, email: str, public_key: str) -> str:
        """Ask the IdP to certify ``public_key`` and return the certificate."""
        path = "/wsapi/cert_key"
        payload = {"email": email, "pubkey": public_key, "ephemeral": False}
        response = await self._post(env, path, payload)
        certificate = response.text.strip()
        if not certificate:
            raise IdentityProviderError(f"{path} returned an empty certificate")
        return certificate

    async def cancel_account(self, env: Environment, context: dict[str, Any]) -> dict[str, Any]:
        path = "/wsapi/account_cancel"
        return self._json(await self._post(env, path, {"context": context}), path)

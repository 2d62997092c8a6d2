"""HTTP route definitions for the test user service."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from testuser_schemas import UnverifiedAccount, VerifiedAccount

from ..domain.account import Environment
from ..domain.service import AccountLifecycleManager
from ..errors import (
    AccountNotFound,
    AuthMismatch,
    IdentityProviderError,
    MissingParameter,
    RegistrationError,
    ServiceError,
    StoreError,
    VerificationTimeout,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


class AccountRequest(BaseModel):
    """Payload selecting the IdP deployment a new account is issued against."""

    env: Environment = Environment.prod


class CancelRequest(BaseModel):
    email: str
    password: str


class CancelResponse(BaseModel):
    result: dict[str, Any]


class AssertionRequest(BaseModel):
    """Credentials and scope for a backed assertion."""

    email: str | None = None
    password: str | None = None
    env: str | None = None
    audience: str | None = None
    duration_ms: int | None = Field(default=None, gt=0)


class AssertionResponse(BaseModel):
    assertion: str


def get_lifecycle(request: Request) -> AccountLifecycleManager:
    """Resolve the `AccountLifecycleManager` stored on the FastAPI application state."""
    lifecycle: AccountLifecycleManager = request.app.state.lifecycle
    return lifecycle


@router.post(
    "/accounts/unverified",
    response_model=UnverifiedAccount,
    status_code=status.HTTP_201_CREATED,
)
async def create_unverified_account(
    payload: AccountRequest,
    lifecycle: AccountLifecycleManager = Depends(get_lifecycle),
) -> UnverifiedAccount:
    """Stage an account and return it together with its verification token."""
    try:
        return await lifecycle.get_unverified_account(payload.env)
    except ServiceError as exc:
        raise _http_error_from_service_error(exc) from exc


@router.post(
    "/accounts/verified",
    response_model=VerifiedAccount,
    status_code=status.HTTP_201_CREATED,
)
async def create_verified_account(
    payload: AccountRequest,
    lifecycle: AccountLifecycleManager = Depends(get_lifecycle),
) -> VerifiedAccount:
    """Stage an account and wait (bounded) until it has been verified."""
    try:
        return await lifecycle.get_verified_account(payload.env)
    except ServiceError as exc:
        raise _http_error_from_service_error(exc) from exc


@router.post("/accounts/cancel", response_model=CancelResponse)
async def cancel_account(
    payload: CancelRequest,
    lifecycle: AccountLifecycleManager = Depends(get_lifecycle),
) -> CancelResponse:
    try:
        result = await lifecycle.cancel_account(payload.email, payload.password)
    except ServiceError as exc:
        raise _http_error_from_service_error(exc) from exc
    return CancelResponse(result=result)


@router.post(
    "/assertions",
    response_model=AssertionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def issue_assertion(
    payload: AssertionRequest,
    lifecycle: AccountLifecycleManager = Depends(get_lifecycle),
) -> AssertionResponse:
    """Mint a ``cert~assertion`` bundle for an existing test account."""
    try:
        bundle = await lifecycle.issue_assertion(
            payload.email,
            payload.password,
            payload.env,
            payload.audience,
            payload.duration_ms,
        )
    except ServiceError as exc:
        raise _http_error_from_service_error(exc) from exc
    return AssertionResponse(assertion=bundle)


_STATUS_BY_ERROR: list[tuple[type[ServiceError], int]] = [
    (MissingParameter, status.HTTP_400_BAD_REQUEST),
    (AuthMismatch, status.HTTP_401_UNAUTHORIZED),
    (AccountNotFound, status.HTTP_404_NOT_FOUND),
    (RegistrationError, status.HTTP_502_BAD_GATEWAY),
    (IdentityProviderError, status.HTTP_502_BAD_GATEWAY),
    (StoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (VerificationTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
]


def _http_error_from_service_error(exc: ServiceError) -> HTTPException:
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, mapped in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = mapped
            break
    if status_code >= 500:
        logger.warning("request failed with %s: %s", type(exc).__name__, exc)
    return HTTPException(status_code=status_code, detail=str(exc))

"""FastAPI application wiring for the test user service."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis_async
from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .api.routes import router as v1_router
from .config import get_settings
from .domain.account import Environment
from .domain.availability import AvailabilityTable
from .domain.service import AccountLifecycleManager
from .errors import StoreError
from .idp import HttpIdentityProvider
from .notifier import RedisVerificationNotifier
from .store import AccountStore

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


async def _sweep_periodically(lifecycle: AccountLifecycleManager, interval_seconds: int) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await lifecycle.sweep_expired()
        except StoreError as exc:
            logger.warning("expiry sweep failed: %s", exc)


async def _stop_task(task: asyncio.Task[None]) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Redis, IdP client, notifier) for the app lifecycle."""
    client = redis_async.from_url(settings.redis_url, decode_responses=True)
    idp = HttpIdentityProvider(settings)
    notifier = RedisVerificationNotifier(
        client, [settings.verification_channel(env) for env in Environment]
    )
    lifecycle = AccountLifecycleManager(
        AccountStore(client, settings),
        idp,
        availability=AvailabilityTable(),
        notifier=notifier,
        settings=settings,
    )
    app.state.lifecycle = lifecycle
    await notifier.start()
    sweeper = asyncio.create_task(_sweep_periodically(lifecycle, settings.sweep_interval_seconds))
    try:
        yield
    finally:
        await _stop_task(sweeper)
        await notifier.stop()
        await idp.aclose()
        await client.aclose()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)

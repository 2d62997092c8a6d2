"""Sources of asynchronous "account verified" notifications."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, Optional

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError
from testuser_schemas import VerificationReady

logger = logging.getLogger(__name__)

ReadyCallback = Callable[[str, Optional[str]], None]
ErrorCallback = Callable[[str], None]


class VerificationNotifier:
    """Pluggable event source emitting ``ready`` and ``error`` signals.

    Subclasses feed events from a transport by calling :meth:`emit_ready` and
    :meth:`emit_error`; the base class can also be driven directly.
    """

    def __init__(self) -> None:
        self._ready_callbacks: list[ReadyCallback] = []
        self._error_callbacks: list[ErrorCallback] = []

    def on_ready(self, callback: ReadyCallback) -> None:
        self._ready_callbacks.append(callback)

    def on_error(self, callback: ErrorCallback) -> None:
        self._error_callbacks.append(callback)

    def emit_ready(self, email: str, token: str | None = None) -> None:
        for callback in self._ready_callbacks:
            callback(email, token)

    def emit_error(self, detail: str) -> None:
        for callback in self._error_callbacks:
            callback(detail)

    async def start(self) -> None:
        """Begin delivering events; no-op for directly driven notifiers."""

    async def stop(self) -> None:
        """Stop delivering events."""


class RedisVerificationNotifier(VerificationNotifier):
    """Listens for ``VerificationReady`` JSON messages on Redis pub/sub.

    One channel is subscribed per environment. Malformed payloads and
    transport failures are reported through ``error`` and never stop the
    listener.
    """

    def __init__(
        self,
        client: Redis,
        channels: Iterable[str],
        *,
        poll_timeout_seconds: float = 1.0,
        retry_delay_seconds: float = 1.0,
    ) -> None:
        super().__init__()
        self._client = client
        self._channels = list(channels)
        self._poll_timeout = poll_timeout_seconds
        self._retry_delay = retry_delay_seconds
        self._pubsub: PubSub | None = None
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """Subscribe to every channel, then spawn the listening task."""
        self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        await self._pubsub.subscribe(*self._channels)
        self._task = asyncio.create_task(self._listen(self._pubsub))
        logger.info("verification notifier subscribed to %s", ", ".join(self._channels))

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None

    async def _listen(self, pubsub: PubSub) -> None:
        while True:
            try:
                message = await pubsub.get_message(timeout=self._poll_timeout)
            except RedisError as exc:
                self.emit_error(f"verification channel failure: {exc}")
                await asyncio.sleep(self._retry_delay)
                continue
            if message is None or message.get("type") != "message":
                continue
            try:
                self.handle_message(message["data"])
            except Exception as exc:
                logger.exception("verification event handling failed")
                self.emit_error(f"verification event handling failed: {exc}")

    def handle_message(self, data: str | bytes) -> None:
        """Parse one pub/sub payload and emit the matching signal."""
        try:
            event = VerificationReady.model_validate_json(data)
        except ValidationError as exc:
            self.emit_error(f"malformed verification event: {exc.error_count()} error(s)")
            return
        self.emit_ready(str(event.email), event.token)

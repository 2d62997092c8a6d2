"""In-process rendezvous between verification events and waiting requests."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class AvailabilityTable:
    """Map of email -> ready marker, filled by notifier callbacks.

    Writes are single-key and insert-only and reads are existence checks, so
    no lock is needed on a single event loop.
    """

    def __init__(self) -> None:
        self._ready: dict[str, str | bool] = {}

    def mark_ready(self, email: str, token: str | None = None) -> None:
        """Record ``email`` as verified; repeats are ignored."""
        if email in self._ready:
            logger.debug("duplicate ready notification for %s ignored", email)
            return
        self._ready[email] = token or True

    def is_ready(self, email: str) -> bool:
        return email in self._ready

    def token_for(self, email: str) -> str | None:
        marker = self._ready.get(email)
        return marker if isinstance(marker, str) else None

    def discard(self, email: str) -> None:
        self._ready.pop(email, None)

    def __contains__(self, email: object) -> bool:
        return email in self._ready

    def __len__(self) -> int:
        return len(self._ready)

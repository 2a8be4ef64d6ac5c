"""Cached availability verdict for the local inference backend."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from tiered_router.config import Settings, settings as default_settings
from tiered_router.logging import get_logger

from .base import HealthStatus, InferenceBackend

logger = get_logger(__name__)


@dataclass
class AvailabilityState:
    is_available: bool = False
    last_checked_at: Optional[float] = None  # monotonic seconds
    cache_ttl: float = 30.0
    last_error: Optional[str] = None
    models_available: tuple[str, ...] = field(default_factory=tuple)


class AvailabilityGuard:
    """Answers "is the classifier backend usable?" without probing every message.

    The verdict is reused for `cache_ttl` seconds. Staleness is tolerated: the
    first caller to notice an expired verdict starts a probe and concurrent
    callers await that same probe instead of starting their own.
    """

    def __init__(self, backend: InferenceBackend, settings: Settings = default_settings):
        self.backend = backend
        self.probe_timeout = settings.OLLAMA_HEALTH_TIMEOUT_SECONDS
        self.state = AvailabilityState(cache_ttl=settings.OLLAMA_HEALTH_TTL_SECONDS)
        self._probe: Optional[asyncio.Task[HealthStatus]] = None
        self.probe_count = 0

    def _is_fresh(self) -> bool:
        checked = self.state.last_checked_at
        return checked is not None and time.monotonic() - checked < self.state.cache_ttl

    async def is_available(self) -> bool:
        if self._is_fresh():
            return self.state.is_available
        await self.refresh()
        return self.state.is_available

    async def refresh(self) -> HealthStatus:
        """Probe now (or join a probe already in flight) and store the verdict."""
        if self._probe is None or self._probe.done():
            self._probe = asyncio.ensure_future(self._run_probe())
        # Shield so one abandoned caller does not cancel the probe for everyone
        return await asyncio.shield(self._probe)

    async def _run_probe(self) -> HealthStatus:
        self.probe_count += 1
        try:
            status = await asyncio.wait_for(
                self.backend.health_check(), timeout=self.probe_timeout
            )
        except asyncio.TimeoutError:
            status = HealthStatus(
                available=False,
                error=f"Health check timed out after {self.probe_timeout:.1f}s",
            )
        except Exception as e:
            status = HealthStatus(available=False, error=f"Health check failed: {e}")

        was_available = self.state.is_available
        self.state.is_available = status.available
        self.state.last_checked_at = time.monotonic()
        self.state.last_error = status.error
        if status.models_available:
            self.state.models_available = status.models_available

        if status.available and not was_available:
            logger.info(f"Inference backend available (model={status.model_loaded})")
        elif not status.available:
            logger.warning(f"Inference backend unavailable: {status.error}")
        return status

    def invalidate(self) -> None:
        """Force a probe on the next `is_available()` call."""
        self.state.last_checked_at = None

    def mark_unavailable(self, reason: str) -> None:
        """Record an out-of-band failure; the next scheduled probe may clear it."""
        self.state.is_available = False
        self.state.last_error = reason
        self.state.last_checked_at = time.monotonic()

    def status(self) -> dict[str, Any]:
        age = None
        if self.state.last_checked_at is not None:
            age = round(time.monotonic() - self.state.last_checked_at, 3)
        return {
            "available": self.state.is_available,
            "last_error": self.state.last_error,
            "checked_seconds_ago": age,
            "cache_ttl": self.state.cache_ttl,
            "models_available": list(self.state.models_available),
            "probe_count": self.probe_count,
        }

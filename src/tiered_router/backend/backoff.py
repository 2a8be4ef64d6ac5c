"""Exponential backoff after consecutive classifier failures."""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

from tiered_router.config import Settings, settings as default_settings
from tiered_router.logging import get_logger

logger = get_logger(__name__)


class BackoffState:
    """Tracks consecutive failures and the window during which the classifier is skipped.

    Backoff starts once `failures_to_trigger` failures happen in a row. Each
    further failure extends the window by `multiplier`, up to `max_seconds`.
    One success clears everything.
    """

    def __init__(
        self,
        settings: Settings = default_settings,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failures_to_trigger = max(1, settings.BACKOFF_FAILURES_TO_TRIGGER)
        self.initial_seconds = settings.BACKOFF_INITIAL_SECONDS
        self.max_seconds = settings.BACKOFF_MAX_SECONDS
        self.multiplier = settings.BACKOFF_MULTIPLIER
        self._clock = clock
        self.consecutive_failures = 0
        self.backoff_until: Optional[float] = None
        self.last_failure_reason: Optional[str] = None

    def current_delay(self) -> float:
        if self.consecutive_failures < self.failures_to_trigger:
            return 0.0
        exponent = self.consecutive_failures - self.failures_to_trigger
        return min(self.initial_seconds * (self.multiplier**exponent), self.max_seconds)

    def record_failure(self, reason: str = "") -> None:
        self.consecutive_failures += 1
        self.last_failure_reason = reason or None
        delay = self.current_delay()
        if delay > 0:
            self.backoff_until = self._clock() + delay
            logger.warning(
                f"Classifier backoff for {delay:.0f}s after "
                f"{self.consecutive_failures} consecutive failures ({reason})"
            )

    def record_success(self) -> None:
        if self.consecutive_failures:
            logger.info(
                f"Classifier recovered after {self.consecutive_failures} failures"
            )
        self.consecutive_failures = 0
        self.backoff_until = None
        self.last_failure_reason = None

    def in_backoff(self) -> bool:
        return self.backoff_until is not None and self._clock() < self.backoff_until

    def remaining_seconds(self) -> float:
        if not self.in_backoff():
            return 0.0
        return max(0.0, self.backoff_until - self._clock())  # type: ignore[operator]

    def snapshot(self) -> dict[str, Any]:
        return {
            "in_backoff": self.in_backoff(),
            "consecutive_failures": self.consecutive_failures,
            "remaining_seconds": round(self.remaining_seconds(), 3),
            "last_failure_reason": self.last_failure_reason,
        }

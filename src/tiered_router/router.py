"""Tiered router: decides per message how much computation to spend.

Pipeline: fast-path keyword match, then (on a miss) backoff and availability
checks, the model-backed classifier, validation overrides, and the tier
resolver. Every path that cannot produce a confident decision ends in the
API tier.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from tiered_router.backend.availability import AvailabilityGuard
from tiered_router.backend.backoff import BackoffState
from tiered_router.backend.base import InferenceBackend
from tiered_router.backend.ollama import OllamaBackend
from tiered_router.config import Settings, settings as default_settings
from tiered_router.intent.fast_path import try_fast_path
from tiered_router.intent.llm import ModelClassifier
from tiered_router.intent.resolver import resolve, select_model, threshold_for, validate_local_input
from tiered_router.intent.rules import apply_overrides
from tiered_router.intent.signatures import SignatureRegistry
from tiered_router.intent.types import (
    TOOL_EXECUTABLE_INTENTS,
    ClassificationResult,
    Intent,
    RoutingDecision,
    Tier,
)
from tiered_router.learning.keywords import KeywordLog
from tiered_router.logging import get_logger
from tiered_router.telemetry.recorder import RoutingEventQueue, decision_event
from tiered_router.utils.timing import LatencyTracker, timer

logger = get_logger(__name__)

WARMUP_MESSAGE = "hola"


@dataclass
class RouterStats:
    total_requests: int = 0
    fast_path_hits: int = 0
    fast_path_vetoes: int = 0
    classifier_calls: int = 0
    classifier_failures: int = 0
    overrides_applied: int = 0
    backoff_skips: int = 0
    unavailable_skips: int = 0
    fallbacks: int = 0
    by_tier: dict[str, int] = field(default_factory=lambda: {t.value: 0 for t in Tier})
    reset_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _api(intent: Intent, reason: str, source: str, **kwargs: Any) -> RoutingDecision:
    return RoutingDecision(tier=Tier.API, intent=intent, reason=reason, source=source, **kwargs)


class TieredRouter:
    """Routes messages to the deterministic, local or API tier.

    Holds no per-conversation state. Shared state (registry snapshot,
    availability verdict, backoff window) is refreshed by time, without locks.
    """

    def __init__(
        self,
        backend: Optional[InferenceBackend] = None,
        settings: Settings = default_settings,
        registry: Optional[SignatureRegistry] = None,
        events: Optional[RoutingEventQueue] = None,
        direct_tools_enabled: bool = True,
    ):
        self.settings = settings
        self.backend = backend if backend is not None else OllamaBackend(settings)
        self.registry = registry or SignatureRegistry(
            settings, keyword_log=KeywordLog(settings.LEARNED_KEYWORDS_PATH)
        )
        self.availability = AvailabilityGuard(self.backend, settings)
        self.classifier = ModelClassifier(self.backend, settings)
        self.backoff = BackoffState(settings)
        self.events = events
        if self.events is None and settings.RECORD_EVENTS:
            self.events = RoutingEventQueue(settings)
        self.direct_tools_enabled = direct_tools_enabled
        self._stats = RouterStats()
        self._classifier_latency = LatencyTracker("classifier")

    async def route(self, text: str) -> RoutingDecision:
        with timer() as elapsed:
            decision = await self._decide(text)
        decision.latency_ms = int(elapsed())

        self._stats.total_requests += 1
        self._stats.by_tier[decision.tier.value] += 1
        logger.info(
            f"route_decision tier={decision.tier.value} intent={decision.intent.value} "
            f"confidence={decision.confidence:.2f} source={decision.source} "
            f"latency_ms={decision.latency_ms} reason={decision.reason!r}"
        )
        if self.events is not None:
            self.events.publish(decision_event(text, decision))
        return decision

    async def _decide(self, text: str) -> RoutingDecision:
        if not self.settings.ROUTER_ENABLED:
            return _api(Intent.UNKNOWN, "Router disabled", "disabled")
        if not text or not text.strip():
            return _api(Intent.UNKNOWN, "Empty message", "fast_path")

        fast = self._fast_path(text)
        if fast is not None:
            return fast

        if self.backoff.in_backoff():
            self._stats.backoff_skips += 1
            return _api(
                Intent.UNKNOWN,
                f"Classifier in backoff ({self.backoff.remaining_seconds():.0f}s remaining)",
                "backoff",
            )

        if not await self.availability.is_available():
            self._stats.unavailable_skips += 1
            error = self.availability.state.last_error or "unknown error"
            return _api(Intent.UNKNOWN, f"Local classifier unavailable: {error}", "unavailable")

        result = await self._classify(text)
        if result.failed:
            return _api(
                Intent.UNKNOWN,
                f"Classification failed: {result.error}",
                "classifier",
                latency_ms=result.latency_ms,
            )
        return self._decide_from_classification(text, result)

    def _fast_path(self, text: str) -> Optional[RoutingDecision]:
        decision = try_fast_path(text, self.registry)
        if decision is None:
            return None

        override = apply_overrides(text, decision.intent, decision.params)
        if override is not None:
            # A keyword hit must not bypass the safety rules; let the classifier decide
            self._stats.fast_path_vetoes += 1
            logger.debug(
                f"Fast-path {decision.intent.value} vetoed by rule {override.rule}"
            )
            return None

        self._stats.fast_path_hits += 1
        if decision.tier == Tier.DETERMINISTIC and not self.direct_tools_enabled:
            decision.tier = Tier.API
            decision.reason = f"{decision.reason} (direct tools disabled)"
        elif decision.tier == Tier.LOCAL:
            decision.model = select_model(
                decision.intent, self.availability.state.models_available, self.settings
            )
        return decision

    async def _classify(self, text: str) -> ClassificationResult:
        self._stats.classifier_calls += 1
        result = await self.classifier.classify(text)
        self._classifier_latency.record(result.latency_ms)

        if result.failed:
            self._stats.classifier_failures += 1
            self.backoff.record_failure(result.error or "backend error")
            if result.unreachable:
                # Later messages skip the backend until the next scheduled probe
                self.availability.mark_unavailable(result.error or "backend unreachable")
        elif result.latency_ms > self.settings.MAX_CLASSIFY_LATENCY_MS:
            # Slow answers are still used, but they push toward backoff
            self._stats.classifier_failures += 1
            self.backoff.record_failure(f"slow classification ({result.latency_ms}ms)")
        else:
            self.backoff.record_success()
        return result

    def _decide_from_classification(
        self, text: str, result: ClassificationResult
    ) -> RoutingDecision:
        common = dict(
            confidence=result.confidence,
            params=dict(result.params),
            latency_ms=result.latency_ms,
        )

        override = apply_overrides(text, result.intent, result.params)
        if override is not None:
            self._stats.overrides_applied += 1
            intent = override.intent or result.intent
            logger.debug(
                f"Override {override.rule}: {result.intent.value} -> {intent.value}"
            )
            return _api(intent, f"Validation override: {override.rule}", "classifier", **common)

        if result.intent == Intent.UNKNOWN:
            return _api(Intent.UNKNOWN, "Unrecognized classifier output", "classifier", **common)

        tier = resolve(
            result.intent, result.confidence, self.direct_tools_enabled, self.settings
        )
        if tier == Tier.API:
            if result.intent in TOOL_EXECUTABLE_INTENTS:
                threshold = threshold_for(result.intent, self.settings)
                reason = f"Confidence {result.confidence:.2f} below threshold {threshold:.2f}"
                if result.confidence >= threshold:
                    reason = "Direct tools disabled"
            else:
                reason = f"Intent {result.intent.value} requires agent reasoning"
            return _api(result.intent, reason, "classifier", **common)

        model = None
        if tier == Tier.LOCAL:
            if not validate_local_input(result.intent, text):
                return _api(
                    result.intent,
                    f"Input not suited for local {result.intent.value}",
                    "classifier",
                    **common,
                )
            model = select_model(
                result.intent, self.availability.state.models_available, self.settings
            )

        return RoutingDecision(
            tier=tier,
            intent=result.intent,
            reason=f"Classified as {result.intent.value} ({result.confidence:.2f})",
            model=model,
            source="classifier",
            **common,
        )

    def record_fallback(self, decision: RoutingDecision, error: str = "") -> None:
        """Called by the host when executing `decision` failed and it fell back to the API tier."""
        self._stats.fallbacks += 1
        logger.warning(
            f"Fallback to api from {decision.tier.value}/{decision.intent.value}: {error}"
        )

    async def warmup(self) -> bool:
        """Load the classifier model with one throwaway request."""
        if not await self.availability.is_available():
            logger.warning(
                f"Skipping warm-up, backend unavailable: {self.availability.state.last_error}"
            )
            return False
        result = await self.classifier.classify(WARMUP_MESSAGE)
        if result.failed:
            logger.warning(f"Warm-up failed: {result.error}")
            return False
        logger.info(f"Classifier warmed up in {result.latency_ms}ms")
        return True

    def stats(self) -> dict[str, Any]:
        data = self._stats.to_dict()
        data["classifier_latency_ms"] = self._classifier_latency.get_stats()
        data["backoff"] = self.backoff.snapshot()
        data["availability"] = self.availability.status()
        if self.events is not None:
            data["events"] = self.events.stats()
        return data

    def reset_stats(self) -> None:
        self._stats = RouterStats()
        self._classifier_latency.reset()

    def start(self) -> None:
        if self.events is not None:
            self.events.start()

    async def close(self) -> None:
        if self.events is not None:
            await self.events.stop()
        close = getattr(self.backend, "close", None)
        if close is not None:
            await close()

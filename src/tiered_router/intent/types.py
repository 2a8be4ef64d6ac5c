from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from tiered_router.errors import SignatureError


class Intent(str, Enum):
    # Deterministic tool intents
    REMINDER = "reminder"
    TIME = "time"
    WEATHER = "weather"
    LIST_REMINDERS = "list_reminders"
    CANCEL_REMINDER = "cancel_reminder"
    # Local model intents
    TRANSLATE = "translate"
    GRAMMAR_CHECK = "grammar_check"
    SUMMARIZE = "summarize"
    EXPLAIN = "explain"
    SIMPLE_CHAT = "simple_chat"
    # Agent intents
    CONVERSATION = "conversation"
    QUESTION = "question"
    FACT_MEMORY = "fact_memory"
    SEARCH = "search"
    TASK = "task"
    COMPLEX = "complex"
    MULTI_INTENT = "multi_intent"
    AMBIGUOUS = "ambiguous"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: object) -> "Intent":
        """Map a raw label onto the enum; anything unrecognized is UNKNOWN."""
        if isinstance(value, Intent):
            return value
        if not isinstance(value, str):
            return cls.UNKNOWN
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN


class Tier(str, Enum):
    DETERMINISTIC = "deterministic"  # direct tool call, sub-10ms
    LOCAL = "local"  # bounded local model, seconds-scale
    API = "api"  # full agentic escalation


DETERMINISTIC_INTENTS: frozenset[Intent] = frozenset(
    {
        Intent.TIME,
        Intent.WEATHER,
        Intent.REMINDER,
        Intent.LIST_REMINDERS,
        Intent.CANCEL_REMINDER,
    }
)

LOCAL_INTENTS: frozenset[Intent] = frozenset(
    {
        Intent.TRANSLATE,
        Intent.GRAMMAR_CHECK,
        Intent.SUMMARIZE,
        Intent.EXPLAIN,
        Intent.SIMPLE_CHAT,
    }
)

# Only these intents may ever bypass the full agent
TOOL_EXECUTABLE_INTENTS: frozenset[Intent] = DETERMINISTIC_INTENTS | LOCAL_INTENTS

INTENT_TIERS: dict[Intent, Tier] = {
    **{intent: Tier.DETERMINISTIC for intent in DETERMINISTIC_INTENTS},
    **{intent: Tier.LOCAL for intent in LOCAL_INTENTS},
}

INTENT_TO_TOOL: dict[Intent, str] = {
    Intent.TIME: "get_current_time",
    Intent.WEATHER: "get_weather",
    Intent.LIST_REMINDERS: "list_reminders",
    Intent.REMINDER: "set_reminder",
    Intent.CANCEL_REMINDER: "cancel_reminder",
}

# Hand-tuned against the classifier; do not change without a labeled re-run
CONFIDENCE_THRESHOLDS: dict[Intent, float] = {
    Intent.TIME: 0.7,
    Intent.LIST_REMINDERS: 0.7,
    Intent.REMINDER: 0.8,
    Intent.WEATHER: 0.75,
    Intent.CANCEL_REMINDER: 0.8,
    Intent.TRANSLATE: 0.75,
    Intent.GRAMMAR_CHECK: 0.75,
    Intent.SUMMARIZE: 0.70,
    Intent.EXPLAIN: 0.70,
    Intent.SIMPLE_CHAT: 0.65,
}

INTENT_MODEL_PREFERENCES: dict[Intent, tuple[str, ...]] = {
    Intent.TRANSLATE: ("gemma2:9b", "qwen2.5:7b-instruct", "mistral:7b-instruct"),
    Intent.GRAMMAR_CHECK: ("qwen2.5:7b-instruct", "mistral:7b-instruct"),
    Intent.SUMMARIZE: ("qwen2.5:7b-instruct", "mistral:7b-instruct"),
    Intent.EXPLAIN: ("gemma2:9b", "qwen2.5:7b-instruct"),
    Intent.SIMPLE_CHAT: ("mistral:7b-instruct", "qwen2.5:7b-instruct"),
}

ParamExtractor = Callable[[str], Optional[dict[str, str]]]


@dataclass(frozen=True)
class Signature:
    primary_keywords: frozenset[str]
    secondary_keywords: frozenset[str] = frozenset()
    min_primary_matches: int = 1
    min_score: float = 0.5  # 0..1
    tier: Tier = Tier.DETERMINISTIC
    param_extractor: Optional[ParamExtractor] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.min_primary_matches < 1:
            raise SignatureError(
                f"min_primary_matches must be >= 1, got {self.min_primary_matches}"
            )
        if not 0.0 <= self.min_score <= 1.0:
            raise SignatureError(f"min_score must be in [0, 1], got {self.min_score}")
        if not self.primary_keywords:
            raise SignatureError("signature needs at least one primary keyword")


@dataclass(frozen=True)
class ClassificationResult:
    intent: Intent = Intent.UNKNOWN
    confidence: float = 0.0  # 0..1
    params: dict[str, str] = field(default_factory=dict)
    raw_response: str = ""
    latency_ms: int = 0
    error: Optional[str] = None  # set when the backend call itself failed
    # The backend could not be reached at all (as opposed to a slow or bad reply)
    unreachable: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class Override:
    """Outcome of a validation rule; `intent=None` keeps the classified intent."""

    rule: str
    intent: Optional[Intent] = None
    tier: Tier = Tier.API


@dataclass
class RoutingDecision:
    tier: Tier
    intent: Intent
    confidence: float = 0.0
    params: dict[str, str] = field(default_factory=dict)
    reason: str = ""
    model: Optional[str] = None
    latency_ms: int = 0
    source: str = "fast_path"  # "fast_path"|"classifier"|"fallback"

    def to_dict(self) -> dict[str, object]:
        return {
            "tier": self.tier.value,
            "intent": self.intent.value,
            "confidence": round(self.confidence, 4),
            "params": dict(self.params),
            "reason": self.reason,
            "model": self.model,
            "latency_ms": self.latency_ms,
            "source": self.source,
        }

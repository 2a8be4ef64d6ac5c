from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from tiered_router.backend.base import model_names_match
from tiered_router.config import Settings, settings as default_settings
from tiered_router.logging import get_logger

from .types import (
    CONFIDENCE_THRESHOLDS,
    DETERMINISTIC_INTENTS,
    INTENT_MODEL_PREFERENCES,
    INTENT_TIERS,
    TOOL_EXECUTABLE_INTENTS,
    Intent,
    Tier,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class LocalInputRule:
    min_length: int = 0
    exclude: Optional[re.Pattern[str]] = None


LOCAL_INPUT_RULES: dict[Intent, LocalInputRule] = {
    Intent.TRANSLATE: LocalInputRule(min_length=10),
    Intent.GRAMMAR_CHECK: LocalInputRule(min_length=5),
    # Shorter text does not need summarizing
    Intent.SUMMARIZE: LocalInputRule(min_length=100),
    # Searching belongs to the agent
    Intent.SIMPLE_CHAT: LocalInputRule(
        exclude=re.compile(r"\b(busca|encuentra|googlea|investiga)\b", re.IGNORECASE)
    ),
}


def threshold_for(intent: Intent, settings: Settings = default_settings) -> float:
    return CONFIDENCE_THRESHOLDS.get(intent, settings.DEFAULT_CONFIDENCE_THRESHOLD)


def resolve(
    intent: Intent,
    confidence: float,
    is_direct_tool_capable: bool = True,
    settings: Settings = default_settings,
) -> Tier:
    """Map a classified intent onto an execution tier.

    Only tool-executable intents can leave the API tier, and only when the
    confidence reaches the intent's threshold (inclusive).
    """
    if intent not in TOOL_EXECUTABLE_INTENTS:
        return Tier.API
    if intent in DETERMINISTIC_INTENTS and not is_direct_tool_capable:
        return Tier.API
    if confidence >= threshold_for(intent, settings):
        return INTENT_TIERS[intent]
    return Tier.API


def validate_local_input(intent: Intent, text: str) -> bool:
    rule = LOCAL_INPUT_RULES.get(intent)
    if rule is None:
        return True
    if len(text) < rule.min_length:
        logger.debug(f"Input too short for {intent.value} ({len(text)} < {rule.min_length})")
        return False
    if rule.exclude is not None and rule.exclude.search(text):
        logger.debug(f"Input contains excluded keywords for {intent.value}")
        return False
    return True


def select_model(
    intent: Intent,
    installed: Iterable[str],
    settings: Settings = default_settings,
) -> str:
    """Pick the first preferred model that is installed, else the configured one."""
    installed = list(installed)
    for wanted in INTENT_MODEL_PREFERENCES.get(intent, ()):
        for name in installed:
            if model_names_match(wanted, name):
                return name
    return settings.OLLAMA_MODEL

from __future__ import annotations

import re
from typing import Callable, Mapping, Optional

from .types import Intent, Override

_NEGATION_RE = re.compile(r"^no\s+(me|quiero|necesito|te)\b")
_NEGATION_EXCEPTION_RE = re.compile(r"no\s+me\s+dejes\s+olvidar")
_MASS_QUANTIFIER_RE = re.compile(r"\b(todos?|todas?)\b")
# Verb stems, so infinitives and voseo forms ("cancelar", "cancelá") match too
_MASS_VERB_RE = re.compile(r"\b(elimin|borr|cancel|quit|delet|remov)\w*")
_FACT_RE = re.compile(
    r"\brecord[aá]me\s+que\s+"
    r"(soy|tengo|trabajo|vivo|estoy|me\s+gusta|prefiero|no\s+puedo|no\s+me\s+gusta)\b"
)
_SUGGESTION_RE = re.compile(r"^(deber[ií]as|podr[ií]as|quiz[aá]s?|tal\s*vez|capaz\s+que)\b")

_TIME_PARAMS = ("time", "datetime")
_MESSAGE_PARAMS = ("message", "task")

# One-word messages that still carry a clear request
KNOWN_SINGLE_WORDS: frozenset[str] = frozenset(
    {"hora", "hour", "time", "clima", "weather", "tiempo", "recordatorios", "reminders"}
)

_EDGE_PUNCTUATION = "¿?¡!.,;:\"'()[]{}«»…"


def _has_value(params: Mapping[str, str], keys: tuple[str, ...]) -> bool:
    return any(str(params.get(key) or "").strip() for key in keys)


def _negation(text: str, intent: Intent, params: Mapping[str, str]) -> Optional[Override]:
    if not _NEGATION_RE.search(text):
        return None
    if _NEGATION_EXCEPTION_RE.search(text):
        return None
    return Override(rule="negation", intent=Intent.CONVERSATION)


def _mass_action(text: str, intent: Intent, params: Mapping[str, str]) -> Optional[Override]:
    if _MASS_QUANTIFIER_RE.search(text) and _MASS_VERB_RE.search(text):
        # Keep the intent; the agent asks for confirmation
        return Override(rule="mass_action")
    return None


def _incomplete_reminder(
    text: str, intent: Intent, params: Mapping[str, str]
) -> Optional[Override]:
    if intent != Intent.REMINDER:
        return None
    if _has_value(params, _TIME_PARAMS) and _has_value(params, _MESSAGE_PARAMS):
        return None
    return Override(rule="incomplete_reminder", intent=Intent.AMBIGUOUS)


def _fact_memory(text: str, intent: Intent, params: Mapping[str, str]) -> Optional[Override]:
    if intent == Intent.REMINDER and _FACT_RE.search(text):
        return Override(rule="fact_memory", intent=Intent.FACT_MEMORY)
    return None


def _suggestion(text: str, intent: Intent, params: Mapping[str, str]) -> Optional[Override]:
    if _SUGGESTION_RE.search(text):
        return Override(rule="suggestion", intent=Intent.CONVERSATION)
    return None


def _single_word(text: str, intent: Intent, params: Mapping[str, str]) -> Optional[Override]:
    words = text.split()
    if len(words) != 1:
        return None
    if words[0].strip(_EDGE_PUNCTUATION) in KNOWN_SINGLE_WORDS:
        return None
    return Override(rule="single_word", intent=Intent.AMBIGUOUS)


Rule = Callable[[str, Intent, Mapping[str, str]], Optional[Override]]

# Evaluated in order; the first rule that fires decides
RULES: tuple[tuple[str, Rule], ...] = (
    ("negation", _negation),
    ("mass_action", _mass_action),
    ("incomplete_reminder", _incomplete_reminder),
    ("fact_memory", _fact_memory),
    ("suggestion", _suggestion),
    ("single_word", _single_word),
)


def apply_overrides(
    original_message: str,
    intent: Intent,
    params: Optional[Mapping[str, str]] = None,
) -> Optional[Override]:
    """Return the first validation override that applies, or None.

    An override always routes to the API tier. Rules inspect the lowercased,
    trimmed message (diacritics kept, since the patterns spell them out).
    """
    text = original_message.lower().strip()
    params = params or {}
    for _, rule in RULES:
        override = rule(text, intent, params)
        if override is not None:
            return override
    return None

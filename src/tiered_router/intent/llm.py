"""Model-backed intent classifier.

Sends a fixed classification prompt to the local inference backend and turns
its free-form reply into a `ClassificationResult`. Every failure mode (bad
JSON, unknown labels, transport errors, timeouts) collapses to
`unknown` with confidence 0 so the router escalates instead of guessing.
"""

from __future__ import annotations

import asyncio
import json
import math
from typing import Any, Optional

from tiered_router.backend.base import InferenceBackend
from tiered_router.config import Settings, settings as default_settings
from tiered_router.errors import BackendError, BackendUnavailableError
from tiered_router.logging import get_logger
from tiered_router.utils.timing import timer

from .types import ClassificationResult, Intent

logger = get_logger(__name__)

CLASSIFICATION_PROMPT = """You are an intent classifier. Classify the user message into ONE intent.

INTENTS:
- reminder: User COMMANDS to be reminded. Must have BOTH a time AND a message/task.
  YES: "recordame en 10 min de X", "avisame mañana a las 9 de Y"
  NO: "recordame" (incomplete), "deberías recordarme" (suggestion)
- time: User asks for current time, date, day, or month.
  YES: "qué hora es", "qué día es hoy", "en qué mes estamos"
- weather: User asks about weather, temperature, rain, or if they need umbrella/jacket.
  YES: "clima en X", "hace frío?", "va a llover?", "necesito paraguas?", "cuántos grados hay?"
- list_reminders: User wants to see their reminders.
  YES: "qué recordatorios tengo", "mis reminders"
- cancel_reminder: User wants to cancel ONE SPECIFIC reminder.
  YES: "cancela el recordatorio de X", "borra el reminder del banco"
  NO: "elimina todos mis recordatorios" (mass action → conversation)
- conversation: Greetings, chat, thanks, jokes, suggestions, negations, mass actions.
  YES: "hola", "gracias", "no me recuerdes nada", "deberías recordarme algo", "elimina todos"
- question: User asks for information, explanation, or opinion.
  YES: "qué es X", "explicame Y", "cuál es la capital de Z"
- fact_memory: User wants you to REMEMBER a permanent fact (not a timed reminder).
  YES: "recordame que soy alérgico", "acordate que trabajo en X"
- search: User wants to search the web.
  YES: "busca información sobre X"
- task: User wants help with a task.
  YES: "ayudame a escribir un email"
- multi_intent: Multiple distinct intents in one message.
  YES: "qué hora es y recordame de X"
- ambiguous: Cannot determine intent, single word without context, incomplete.
  YES: "pastas", "ok" (without prior context)

CRITICAL RULES:
1. NEGATIONS: "no me...", "no quiero...", "no necesito..." → conversation (NOT the negated action)
2. SUGGESTIONS: "deberías...", "podrías...", "quizás..." → conversation (NOT a command)
3. MASS ACTIONS: "todos", "todas", "todo" with delete/cancel → conversation (needs confirmation)
4. INCOMPLETE: "recordame" alone without time AND message → ambiguous
5. WEATHER includes: temperature questions, rain, umbrella, jacket, cold, hot
6. TIME includes: hour, day, date, month, year questions

OUTPUT FORMAT (JSON only, no explanation):
{"intent": "...", "confidence": 0.0-1.0, "params": {"key": "value"}}

USER MESSAGE: """

EXTENDED_CLASSIFICATION_PROMPT = """You are an intent classifier. Classify the user message into ONE intent.

INTENTS:
- time: User asks for current time, date, day, or month.
  YES: "qué hora es", "qué día es hoy"
- weather: User asks about weather, temperature, rain.
  YES: "clima en X", "va a llover?", "necesito paraguas?"
- reminder: User COMMANDS to be reminded. Must have BOTH a time AND a message.
  YES: "recordame en 10 min de X"
- list_reminders: User wants to see their reminders.
  YES: "qué recordatorios tengo"
- cancel_reminder: User wants to cancel ONE SPECIFIC reminder.
  YES: "cancela el recordatorio de X"
- translate: User wants to translate text to another language.
  YES: "traduce esto al inglés", "how do you say X in English"
- grammar_check: User wants spelling or grammar corrected.
  YES: "corrige este texto", "check my grammar", "fix the spelling"
- summarize: User wants a text summarized.
  YES: "resume este artículo", "summarize this"
- explain: User wants a concept or term explained simply.
  YES: "explícame qué es X", "what is Y"
- simple_chat: Casual conversation, greetings, small talk.
  YES: "hola", "cómo estás", "gracias", "buenos días"
- conversation: Complex discussion, suggestions, negations.
  YES: "no me recuerdes nada", "deberías...", "qué opinas de..."
- question: User asks for information requiring web search or deep knowledge.
  YES: "quién ganó el partido", "noticias de hoy"
- fact_memory: User wants you to REMEMBER a permanent fact.
  YES: "recordame que soy alérgico"
- search: User wants to search the web.
  YES: "busca información sobre X"
- task: User wants help with a complex task.
  YES: "ayudame a escribir un email profesional"
- multi_intent: Multiple distinct intents.
  YES: "qué hora es y traduce esto"
- ambiguous: Cannot determine intent.
  YES: "ok" (without context)
- complex: Requires multi-step reasoning, tool chains, or web search + analysis.
  YES: "investiga sobre X y hazme un resumen", "compara precios de..."

CRITICAL RULES:
1. NEGATIONS → conversation
2. SUGGESTIONS ("deberías...", "podrías...") → conversation
3. MASS ACTIONS ("todos", "elimina todo") → conversation
4. INCOMPLETE commands → ambiguous
5. Simple greetings/thanks → simple_chat
6. Translation requests → translate
7. Grammar/spelling correction → grammar_check
8. Summarization → summarize
9. Explanation requests → explain
10. Requires web search → question or search
11. Multi-step reasoning → complex

OUTPUT FORMAT (JSON only):
{"intent": "...", "confidence": 0.0-1.0, "params": {"key": "value"}}

USER MESSAGE: """

PROMPTS: dict[str, str] = {
    "base": CLASSIFICATION_PROMPT,
    "extended": EXTENDED_CLASSIFICATION_PROMPT,
}

_DEFAULT_CONFIDENCE = 0.5  # reply named an intent but gave no usable confidence


def extract_first_json_object(raw: str) -> Optional[str]:
    """Return the first balanced `{...}` span in `raw`, or None.

    Braces inside JSON strings (and escaped quotes) do not count toward the
    balance, so replies such as `{"params": {"message": "a } b"}}` survive.
    """
    start = raw.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(raw)):
        ch = raw[i]
        if escape:
            escape = False
            continue
        if ch == "\\" and in_string:
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return raw[start : i + 1]
    return None


def _coerce_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return _DEFAULT_CONFIDENCE
    if not math.isfinite(value):
        return _DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, float(value)))


def _coerce_params(params: Any) -> dict[str, str]:
    if not isinstance(params, dict):
        return {}
    out: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        out[str(key)] = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
    return out


def parse_classification(raw: str, latency_ms: int = 0) -> ClassificationResult:
    """Parse a classifier reply; malformed replies become `unknown` with confidence 0."""
    failed = ClassificationResult(raw_response=raw, latency_ms=latency_ms)

    candidate = extract_first_json_object(raw)
    if candidate is None:
        logger.warning(f"No JSON object in classification response: {raw[:200]!r}")
        return failed

    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in classification response ({e}): {raw[:200]!r}")
        return failed

    if not isinstance(payload, dict):
        return failed

    intent = Intent.parse(payload.get("intent"))
    if intent == Intent.UNKNOWN:
        logger.debug(f"Unrecognized intent label: {payload.get('intent')!r}")
        return failed

    return ClassificationResult(
        intent=intent,
        confidence=_coerce_confidence(payload.get("confidence")),
        params=_coerce_params(payload.get("params")),
        raw_response=raw,
        latency_ms=latency_ms,
    )


class ModelClassifier:
    """Classifies one message with the local model; never raises except on cancellation."""

    def __init__(
        self,
        backend: InferenceBackend,
        settings: Settings = default_settings,
        prompt: Optional[str] = None,
    ):
        self.backend = backend
        self.prompt = prompt if prompt is not None else PROMPTS[settings.CLASSIFIER_PROMPT]
        self.temperature = settings.CLASSIFIER_TEMPERATURE
        self.max_tokens = settings.CLASSIFIER_MAX_TOKENS
        self.timeout = settings.OLLAMA_TIMEOUT_SECONDS

    def build_prompt(self, message: str) -> str:
        return self.prompt + message

    async def classify(self, message: str) -> ClassificationResult:
        with timer() as elapsed:
            try:
                raw = await asyncio.wait_for(
                    self.backend.generate(
                        self.build_prompt(message),
                        temperature=self.temperature,
                        max_tokens=self.max_tokens,
                    ),
                    timeout=self.timeout,
                )
            except asyncio.CancelledError:
                raise
            except asyncio.TimeoutError:
                error = f"Classification timed out after {self.timeout:.1f}s"
                logger.warning(error)
                return ClassificationResult(
                    raw_response=error, latency_ms=int(elapsed()), error=error
                )
            except (BackendUnavailableError, ConnectionError) as e:
                logger.warning(f"Classifier backend unreachable: {e}")
                return ClassificationResult(
                    raw_response=str(e),
                    latency_ms=int(elapsed()),
                    error=str(e),
                    unreachable=True,
                )
            except BackendError as e:
                logger.warning(f"Classification failed: {e}")
                return ClassificationResult(
                    raw_response=str(e), latency_ms=int(elapsed()), error=str(e)
                )
            except Exception as e:
                logger.error(f"Unexpected classifier backend error: {e!r}")
                return ClassificationResult(
                    raw_response=str(e), latency_ms=int(elapsed()), error=str(e)
                )

            return parse_classification(raw or "", latency_ms=int(elapsed()))

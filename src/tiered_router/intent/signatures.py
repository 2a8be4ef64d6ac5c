"""Intent signature registry for fast-path keyword matching.

The registry is an explicit value: build one at startup and hand it to the
router. It serves immutable snapshots of `(intent, signature)` pairs in
registration order, rebuilt from the base table plus learned keywords when the
refresh interval has elapsed or after `invalidate()`.
"""

from __future__ import annotations

import re
import time
from dataclasses import replace
from typing import Iterable, Optional

from tiered_router.config import Settings, settings as default_settings
from tiered_router.learning.keywords import KeywordLog
from tiered_router.logging import get_logger

from .normalize import normalize
from .types import Intent, Signature, Tier

logger = get_logger(__name__)

SignatureSnapshot = tuple[tuple[Intent, Signature], ...]

_LANG_CODES: dict[str, str] = {
    "espanol": "es",
    "spanish": "es",
    "castellano": "es",
    "ingles": "en",
    "english": "en",
    "frances": "fr",
    "french": "fr",
    "portugues": "pt",
    "portuguese": "pt",
    "aleman": "de",
    "german": "de",
    "italiano": "it",
    "italian": "it",
}

_TARGET_MARKERS: frozenset[str] = frozenset({"al", "a", "to", "into", "en"})

_WEATHER_LOCATION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"\b(?:clima|weather|temperatura|temperature|pron[oó]stico|forecast|tiempo)"
        r"\s+(?:en|in|de|for|del)\s+([^,?.!¿¡;]+)",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:en|in)\s+([A-ZÁÉÍÓÚÑ][^,?.!¿¡;]*)"),
)

_TRAILING_TIME_WORDS: frozenset[str] = frozenset(
    {"hoy", "manana", "ahora", "today", "tomorrow", "now", "tonight", "esta", "noche"}
)


def extract_translate_params(text: str) -> Optional[dict[str, str]]:
    # Single-letter "a" is dropped by tokenize, so scan raw words here
    words = [w.strip("¿?¡!.,;:\"'()") for w in normalize(text).split()]
    target: Optional[str] = None
    for idx, word in enumerate(words):
        code = _LANG_CODES.get(word)
        if code is None:
            continue
        if idx > 0 and words[idx - 1] in _TARGET_MARKERS:
            return {"targetLang": code}
        target = code
    if target:
        return {"targetLang": target}
    return None


def _clean_location(raw: str) -> str:
    words = raw.split()
    while words and normalize(words[-1]) in _TRAILING_TIME_WORDS:
        words.pop()
    return " ".join(words)


def extract_weather_params(text: str) -> Optional[dict[str, str]]:
    """Pull the location out of the raw text, keeping the caller's casing."""
    for pattern in _WEATHER_LOCATION_PATTERNS:
        match = pattern.search(text or "")
        if not match:
            continue
        location = _clean_location(match.group(1))
        if location:
            return {"location": location}
    return None


def _kw(*words: str) -> frozenset[str]:
    return frozenset(normalize(w) for w in words)


def base_signatures() -> list[tuple[Intent, Signature]]:
    """Built-in signatures in registration order (earlier wins score ties)."""
    return [
        (
            Intent.TRANSLATE,
            Signature(
                primary_keywords=_kw(
                    "traducir", "traduce", "traducime", "translate", "traduccion", "traduzca"
                ),
                secondary_keywords=_kw(
                    "al", "to", "en", "espanol", "ingles", "english", "spanish", "french",
                    "frances", "portugues", "aleman", "german", "italiano", "italian",
                ),
                min_primary_matches=1,
                min_score=0.5,
                tier=Tier.LOCAL,
                param_extractor=extract_translate_params,
            ),
        ),
        (
            Intent.GRAMMAR_CHECK,
            Signature(
                primary_keywords=_kw(
                    "corregir", "corrige", "ortografia", "gramatica", "grammar", "spelling",
                    "revisar",
                ),
                secondary_keywords=_kw("texto", "errores", "fix", "check", "escribi", "escrito"),
                min_primary_matches=1,
                min_score=0.4,
                tier=Tier.LOCAL,
            ),
        ),
        (
            Intent.SUMMARIZE,
            Signature(
                primary_keywords=_kw(
                    "resumir", "resume", "resumen", "summarize", "summary", "resumime"
                ),
                secondary_keywords=_kw("texto", "articulo", "parrafo", "text", "article"),
                min_primary_matches=1,
                min_score=0.5,
                tier=Tier.LOCAL,
            ),
        ),
        (
            Intent.TIME,
            Signature(
                primary_keywords=_kw("hora", "time", "fecha", "date", "dia", "day"),
                secondary_keywords=_kw(
                    "que", "what", "cual", "current", "actual", "hoy", "today", "ahora", "now"
                ),
                min_primary_matches=1,
                min_score=0.5,
                tier=Tier.DETERMINISTIC,
            ),
        ),
        (
            Intent.WEATHER,
            Signature(
                primary_keywords=_kw(
                    "clima", "weather", "temperatura", "temperature", "lluvia", "rain", "llover"
                ),
                secondary_keywords=_kw(
                    "en", "in", "de", "frio", "calor", "paraguas", "umbrella", "pronostico",
                    "forecast", "hace", "va",
                ),
                min_primary_matches=1,
                min_score=0.4,
                tier=Tier.DETERMINISTIC,
                param_extractor=extract_weather_params,
            ),
        ),
        (
            Intent.LIST_REMINDERS,
            Signature(
                primary_keywords=_kw("recordatorios", "reminders", "pendientes", "alarmas"),
                secondary_keywords=_kw(
                    "mis", "my", "listar", "list", "ver", "mostrar", "show", "tengo", "activos"
                ),
                min_primary_matches=1,
                min_score=0.5,
                tier=Tier.DETERMINISTIC,
            ),
        ),
        (
            Intent.REMINDER,
            Signature(
                primary_keywords=_kw(
                    "recordame", "recordar", "remind", "reminder", "avisame", "alertame"
                ),
                secondary_keywords=_kw(
                    "en", "in", "a las", "at", "manana", "tomorrow", "minutos", "minutes",
                    "horas", "hours", "dentro",
                ),
                min_primary_matches=1,
                # Needs a time indicator on top of the verb
                min_score=0.6,
                tier=Tier.DETERMINISTIC,
            ),
        ),
        (
            Intent.CANCEL_REMINDER,
            Signature(
                primary_keywords=_kw(
                    "cancelar", "cancel", "borrar", "delete", "eliminar", "quitar", "remove"
                ),
                secondary_keywords=_kw("recordatorio", "reminder", "alarma", "alarm"),
                min_primary_matches=1,
                # Needs both action and target
                min_score=0.6,
                tier=Tier.DETERMINISTIC,
            ),
        ),
        (
            Intent.SIMPLE_CHAT,
            Signature(
                primary_keywords=_kw(
                    "hola", "hello", "hi", "hey", "gracias", "thanks", "chau", "bye", "adios"
                ),
                secondary_keywords=_kw(
                    "buenos", "dias", "tardes", "noches", "morning", "afternoon", "evening",
                    "good",
                ),
                min_primary_matches=1,
                # Only very clear greetings
                min_score=0.8,
                tier=Tier.LOCAL,
            ),
        ),
    ]


class SignatureRegistry:
    """Read-mostly signature table with time-based soft invalidation.

    No lock guards the rebuild: whichever caller first notices staleness
    rebuilds, and concurrent readers keep using the previous snapshot.
    """

    def __init__(
        self,
        settings: Settings = default_settings,
        base: Optional[Iterable[tuple[Intent, Signature]]] = None,
        keyword_log: Optional[KeywordLog] = None,
    ):
        self.refresh_seconds = settings.SIGNATURE_REFRESH_SECONDS
        self.min_learned_confidence = settings.LEARNED_KEYWORD_MIN_CONFIDENCE
        self._base: list[tuple[Intent, Signature]] = list(
            base if base is not None else base_signatures()
        )
        self._keyword_log = keyword_log
        self._snapshot: SignatureSnapshot = tuple(self._base)
        self._loaded_at: Optional[float] = None

    def snapshot(self) -> SignatureSnapshot:
        now = time.monotonic()
        if self._loaded_at is None or now - self._loaded_at >= self.refresh_seconds:
            self._snapshot = self._build()
            self._loaded_at = now
        return self._snapshot

    def invalidate(self) -> None:
        """Force a rebuild on the next snapshot (e.g. after a learning event)."""
        self._loaded_at = None

    def register(self, intent: Intent, signature: Signature) -> None:
        """Append a signature; it loses score ties to everything registered before it."""
        self._base.append((intent, signature))
        self.invalidate()

    def _build(self) -> SignatureSnapshot:
        learned: dict[Intent, set[str]] = {}
        if self._keyword_log is not None:
            try:
                learned = self._keyword_log.learned_keywords(self.min_learned_confidence)
            except (OSError, ValueError) as e:
                # Keep serving the previous table rather than failing the request
                logger.warning(f"Could not load learned keywords: {e}")
                return self._snapshot

        entries: list[tuple[Intent, Signature]] = []
        for intent, signature in self._base:
            extra = {
                kw
                for kw in (normalize(k) for k in learned.get(intent, ()))
                if len(kw) > 1 and kw not in signature.primary_keywords
            }
            if extra - signature.secondary_keywords:
                signature = replace(
                    signature,
                    secondary_keywords=signature.secondary_keywords | frozenset(extra),
                )
            entries.append((intent, signature))

        logger.debug(
            f"Signature registry rebuilt: {len(entries)} signatures, "
            f"{sum(len(v) for v in learned.values())} learned keywords"
        )
        return tuple(entries)

    def describe(self) -> list[dict[str, object]]:
        rows: list[dict[str, object]] = []
        for intent, sig in self.snapshot():
            rows.append(
                {
                    "intent": intent.value,
                    "tier": sig.tier.value,
                    "primary": sorted(sig.primary_keywords),
                    "secondary": sorted(sig.secondary_keywords),
                    "min_primary_matches": sig.min_primary_matches,
                    "min_score": sig.min_score,
                    "has_extractor": sig.param_extractor is not None,
                }
            )
        return rows

"""Keyword fast-path: zero-latency intent detection.

Scores the input against every registered signature and returns a decision
only when one clears its threshold; `None` means "ask the classifier".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from tiered_router.logging import get_logger

from .normalize import tokenize
from .signatures import SignatureRegistry
from .types import Intent, RoutingDecision, Signature

logger = get_logger(__name__)

PRIMARY_WEIGHT = 0.7
SECONDARY_WEIGHT = 0.3

# Shorter keywords ("dia", "hi") only match exactly
MIN_INFLECTED_KEYWORD_LEN = 4
# Shorter tokens ("de", "ti") never stand in for a longer keyword
MIN_TRUNCATED_TOKEN_LEN = 3


@dataclass(frozen=True)
class SignatureScore:
    score: float
    primary_matches: int
    secondary_matches: int
    matched_primary: tuple[str, ...]
    matched_secondary: tuple[str, ...]


def _keyword_matches(keyword: str, tokens: Iterable[str]) -> bool:
    # Either side may be a prefix of the other ("recordatorios" ~ "recordatorio")
    for token in tokens:
        if token == keyword:
            return True
        if len(keyword) >= MIN_INFLECTED_KEYWORD_LEN and token.startswith(keyword):
            return True
        if len(token) >= MIN_TRUNCATED_TOKEN_LEN and keyword.startswith(token):
            return True
    return False


def score_signature(tokens: list[str], signature: Signature) -> SignatureScore:
    token_set = set(tokens)
    matched_primary = tuple(
        sorted(kw for kw in signature.primary_keywords if _keyword_matches(kw, token_set))
    )
    matched_secondary = tuple(
        sorted(kw for kw in signature.secondary_keywords if _keyword_matches(kw, token_set))
    )

    primary_score = min(len(matched_primary) / max(signature.min_primary_matches, 1), 1.0)
    secondary_score = 0.0
    if signature.secondary_keywords and matched_secondary:
        secondary_score = min(len(matched_secondary) / len(signature.secondary_keywords), 1.0)

    return SignatureScore(
        score=PRIMARY_WEIGHT * primary_score + SECONDARY_WEIGHT * secondary_score,
        primary_matches=len(matched_primary),
        secondary_matches=len(matched_secondary),
        matched_primary=matched_primary,
        matched_secondary=matched_secondary,
    )


def try_fast_path(text: str, registry: SignatureRegistry) -> Optional[RoutingDecision]:
    """Return the best keyword match, or None to defer to the classifier.

    Ties go to the signature registered first. Parameters are extracted from
    the raw text so values such as locations keep their casing.
    """
    tokens = tokenize(text, stem=False)
    if not tokens:
        return None

    signatures = registry.snapshot()

    best: Optional[tuple[Intent, Signature, SignatureScore]] = None
    for intent, signature in signatures:
        result = score_signature(tokens, signature)
        if result.primary_matches < signature.min_primary_matches:
            continue
        if result.score < signature.min_score:
            continue
        if best is None or result.score > best[2].score:
            best = (intent, signature, result)

    if best is None:
        return None

    intent, signature, result = best
    params: dict[str, str] = {}
    if signature.param_extractor is not None:
        params = dict(signature.param_extractor(text) or {})

    logger.debug(
        f"Fast-path keyword match: intent={intent.value} score={result.score:.2f} "
        f"primary={list(result.matched_primary)} secondary={list(result.matched_secondary)}"
    )

    return RoutingDecision(
        tier=signature.tier,
        intent=intent,
        confidence=result.score,
        params=params,
        reason=f"Keyword match: {', '.join(result.matched_primary)}",
        source="fast_path",
    )

"""Append-only log of learned intent keywords.

A separate learning process appends `KeywordEvent`s; the signature registry
reads the log when it rebuilds its snapshot. Requests never write here.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Union

from tiered_router.intent.types import Intent
from tiered_router.utils.jsonl import JSONLReader, append_jsonl


@dataclass(frozen=True)
class KeywordEvent:
    intent: Intent
    keyword: str
    confidence: float = 0.0  # 0..1
    validated_by: str = "manual"  # "manual"|"agent"|"user_feedback"
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["intent"] = self.intent.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KeywordEvent":
        try:
            confidence = max(0.0, min(1.0, float(data.get("confidence", 0.0))))
        except (TypeError, ValueError):
            confidence = 0.0
        try:
            created_at = float(data.get("created_at", 0.0))
        except (TypeError, ValueError):
            created_at = 0.0
        return cls(
            intent=Intent.parse(data.get("intent")),
            keyword=str(data.get("keyword", "") or "").strip(),
            confidence=confidence,
            validated_by=str(data.get("validated_by", "") or ""),
            created_at=created_at,
        )


class KeywordLog:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def append(self, event: KeywordEvent) -> None:
        if event.intent == Intent.UNKNOWN:
            raise ValueError("cannot learn keywords for the unknown intent")
        if not event.keyword.strip():
            raise ValueError("keyword must not be blank")
        append_jsonl([event.to_dict()], self.path)

    def events(self) -> list[KeywordEvent]:
        return [KeywordEvent.from_dict(row) for row in JSONLReader(self.path).iterate()]

    def load(self) -> dict[Intent, list[KeywordEvent]]:
        grouped: dict[Intent, list[KeywordEvent]] = {}
        for event in self.events():
            if event.intent == Intent.UNKNOWN or not event.keyword:
                continue
            grouped.setdefault(event.intent, []).append(event)
        return grouped

    def learned_keywords(self, min_confidence: float = 0.0) -> dict[Intent, set[str]]:
        out: dict[Intent, set[str]] = {}
        for intent, events in self.load().items():
            keywords = {e.keyword for e in events if e.confidence >= min_confidence}
            if keywords:
                out[intent] = keywords
        return out

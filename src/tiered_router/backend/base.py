from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol


@dataclass(frozen=True)
class HealthStatus:
    available: bool
    model_loaded: Optional[str] = None  # expected model, when installed
    models_available: tuple[str, ...] = field(default_factory=tuple)
    error: Optional[str] = None


class InferenceBackend(Protocol):
    """Local inference backend used for classification."""

    model: str

    async def generate(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        """Return the raw completion text for `prompt`."""
        ...

    async def health_check(self) -> HealthStatus:
        """Report reachability and whether the expected model is installed."""
        ...


def model_names_match(wanted: str, installed: str) -> bool:
    """Compare model tags, treating `name` and `name:latest` as equal."""
    a = wanted.lower().removesuffix(":latest")
    b = installed.lower().removesuffix(":latest")
    return a == b

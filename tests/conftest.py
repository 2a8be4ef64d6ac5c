"""Pytest configuration file."""

import asyncio
from pathlib import Path
from typing import Any, Callable, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tiered_router.api.app import create_app
from tiered_router.backend.base import HealthStatus
from tiered_router.config import Settings
from tiered_router.router import TieredRouter

MODEL = "qwen2.5:3b-instruct"


class FakeBackend:
    """In-memory stand-in for the Ollama backend."""

    def __init__(
        self,
        reply: str = '{"intent": "conversation", "confidence": 0.9, "params": {}}',
        available: bool = True,
        error: Optional[BaseException] = None,
        delay: float = 0.0,
        models: tuple[str, ...] = (MODEL,),
    ):
        self.model = MODEL
        self.reply = reply
        self.available = available
        self.error = error
        self.delay = delay
        self.models = models
        self.prompts: list[str] = []
        self.health_calls = 0

    async def generate(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply

    async def health_check(self) -> HealthStatus:
        self.health_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.available:
            return HealthStatus(available=False, error="Cannot connect to Ollama")
        return HealthStatus(available=True, model_loaded=MODEL, models_available=self.models)


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    """Build isolated settings that write under the test's tmp dir."""

    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "log_dir": str(tmp_path / "logs"),
            "LEARNED_KEYWORDS_PATH": str(tmp_path / "learned_keywords.jsonl"),
            "RECORD_EVENTS": False,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def fake_backend_cls() -> type[FakeBackend]:
    return FakeBackend


@pytest.fixture
def make_router(make_settings: Callable[..., Settings]) -> Callable[..., TieredRouter]:
    def _make(backend: Optional[FakeBackend] = None, **overrides: Any) -> TieredRouter:
        return TieredRouter(
            backend=backend if backend is not None else FakeBackend(),
            settings=make_settings(**overrides),
        )

    return _make


@pytest.fixture
def app(make_router: Callable[..., TieredRouter]) -> FastAPI:
    """Create a test FastAPI application around a fake backend."""
    return create_app(router=make_router())


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create a test client."""
    return TestClient(app)

"""Ollama backend over its OpenAI-compatible endpoint."""

from __future__ import annotations

import asyncio
from typing import Optional

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
)

from tiered_router.config import Settings, settings as default_settings
from tiered_router.errors import BackendError, BackendTimeoutError, BackendUnavailableError
from tiered_router.logging import get_logger

from .base import HealthStatus, model_names_match

logger = get_logger(__name__)


class OllamaBackend:
    def __init__(
        self,
        settings: Settings = default_settings,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = settings.OLLAMA_MODEL
        self.timeout = settings.OLLAMA_TIMEOUT_SECONDS
        self.health_timeout = settings.OLLAMA_HEALTH_TIMEOUT_SECONDS
        self.client = client or AsyncOpenAI(
            base_url=settings.OLLAMA_URL.rstrip("/") + "/v1",
            api_key=settings.OLLAMA_API_KEY,
            timeout=settings.OLLAMA_TIMEOUT_SECONDS,
            max_retries=0,
        )

    async def generate(self, prompt: str, *, temperature: float, max_tokens: int) -> str:
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=temperature,
                    max_tokens=max_tokens,
                ),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, APITimeoutError) as e:
            raise BackendTimeoutError(
                f"Ollama request timed out after {self.timeout:.1f}s"
            ) from e
        except APIConnectionError as e:
            raise BackendUnavailableError(f"Cannot connect to Ollama: {e}") from e
        except APIStatusError as e:
            raise BackendError(f"Ollama returned {e.status_code}: {e.message}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def health_check(self) -> HealthStatus:
        try:
            page = await asyncio.wait_for(
                self.client.models.list(), timeout=self.health_timeout
            )
        except (asyncio.TimeoutError, APITimeoutError):
            return HealthStatus(
                available=False,
                error=f"Health check timed out after {self.health_timeout:.1f}s",
            )
        except APIConnectionError as e:
            return HealthStatus(available=False, error=f"Cannot connect to Ollama: {e}")
        except APIStatusError as e:
            return HealthStatus(available=False, error=f"Ollama returned {e.status_code}")

        installed = tuple(m.id for m in page.data)
        if not any(model_names_match(self.model, name) for name in installed):
            return HealthStatus(
                available=False,
                models_available=installed,
                error=f"Model {self.model} not found. Run: ollama pull {self.model}",
            )
        return HealthStatus(available=True, model_loaded=self.model, models_available=installed)

    async def close(self) -> None:
        await self.client.close()

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Feature flag for the whole router; disabled means every message goes to the API tier
    ROUTER_ENABLED: bool = True

    # Local inference backend (Ollama, OpenAI-compatible endpoint under /v1)
    OLLAMA_URL: str = "http://localhost:11434"
    OLLAMA_MODEL: str = "qwen2.5:3b-instruct"
    OLLAMA_API_KEY: str = "ollama"
    OLLAMA_TIMEOUT_SECONDS: float = 30.0
    OLLAMA_HEALTH_TIMEOUT_SECONDS: float = 3.0
    # Health verdict is reused for this long before the next probe
    OLLAMA_HEALTH_TTL_SECONDS: float = 30.0

    # Classifier generation controls (low temperature for stable labels)
    CLASSIFIER_TEMPERATURE: float = 0.1
    CLASSIFIER_MAX_TOKENS: int = 256
    # "base" covers tool and agent intents; "extended" adds the local-model intents
    CLASSIFIER_PROMPT: Literal["base", "extended"] = "base"
    # Threshold for tool-capable intents missing from the threshold table
    DEFAULT_CONFIDENCE_THRESHOLD: float = 0.8

    # Signature registry refresh
    SIGNATURE_REFRESH_SECONDS: float = 30.0
    LEARNED_KEYWORDS_PATH: str = "artifacts/learned_keywords.jsonl"
    # Learned keywords below this confidence are ignored on merge
    LEARNED_KEYWORD_MIN_CONFIDENCE: float = 0.7

    # Backoff after consecutive classifier failures
    BACKOFF_FAILURES_TO_TRIGGER: int = 3
    BACKOFF_INITIAL_SECONDS: float = 30.0
    BACKOFF_MAX_SECONDS: float = 300.0
    BACKOFF_MULTIPLIER: float = 2.0
    # Slower classifications are still used but count toward backoff
    MAX_CLASSIFY_LATENCY_MS: int = 60000

    # Routing event queue (drop-oldest when full)
    EVENT_QUEUE_SIZE: int = 256
    RECORD_EVENTS: bool = True

    api_host: str = "0.0.0.0"
    api_port: int = 8000

    log_dir: str = "logs"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()

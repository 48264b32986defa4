"""Configuration for the backend using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from mealprep_assistant.application.exceptions import ConfigurationError
from mealprep_assistant.domain.retrieval import (
    DEFAULT_SEARCH_LIMIT,
    LEXICAL_WEIGHT,
    SIMILARITY_THRESHOLD,
    VECTOR_WEIGHT,
)

_PACKAGE_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _PACKAGE_DIR.parent.parent  # src/mealprep_assistant/ -> project root

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class Settings(BaseSettings):
    """All backend settings, loaded from environment variables and .env file.

    Frozen: loaded once at process start and never mutated afterwards.
    """

    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    app_version: str = "0.3.0"

    # ------------------------------------------------------------------
    # Chat-completion provider (OpenRouter preferred, OpenAI otherwise)
    # ------------------------------------------------------------------
    openrouter_api_key: str | None = None
    openai_api_key: str | None = None
    llm_base_url: str | None = None
    app_referer: str = "http://localhost:5173"

    intent_model: str = "qwen/qwen-2.5-7b-instruct"
    extraction_text_model: str = "qwen/qwen-2.5-7b-instruct"
    extraction_vision_model: str = "qwen/qwen-2.5-vl-7b-instruct"
    chat_model: str = "qwen/qwen-3-8b"

    # ------------------------------------------------------------------
    # Embeddings
    # Falls back to the chat-provider values when not set explicitly.
    # ------------------------------------------------------------------
    embedding_api_key: str | None = None
    embedding_base_url: str | None = None
    embedding_model: str = "text-embedding-ada-002"
    embedding_dimensions: int | None = None

    # ------------------------------------------------------------------
    # Timeouts (seconds)
    # ------------------------------------------------------------------
    ai_timeout_seconds: float = 30.0
    webhook_timeout_seconds: float = 30.0
    webhook_extraction_timeout_seconds: float = 120.0

    # ------------------------------------------------------------------
    # External workflow (n8n) webhook
    # ------------------------------------------------------------------
    webhook_enabled: bool = False
    n8n_webhook_url: str | None = None

    rag_backend: Literal["webhook", "local"] = "webhook"
    extraction_backend: Literal["direct", "webhook"] = "direct"

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------
    similarity_threshold: float = SIMILARITY_THRESHOLD
    vector_weight: float = VECTOR_WEIGHT
    lexical_weight: float = LEXICAL_WEIGHT
    search_default_limit: int = DEFAULT_SEARCH_LIMIT

    chat_history_limit: int = 10

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------
    recipes_db_path: Path = _PROJECT_ROOT / "database" / "recipes.sqlite"
    chat_db_path: Path = _PROJECT_ROOT / "database" / "chat_history.sqlite"

    # ------------------------------------------------------------------
    # Auth (JWT). Set AUTH_ENABLED=false to disable for development
    # ------------------------------------------------------------------
    auth_enabled: bool = True
    jwt_secret: str = "dev-secret-change-in-production!!"
    jwt_expiry_hours: int = 24
    internal_api_key: str | None = None

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False

    # ------------------------------------------------------------------
    # Resolved provider values
    # ------------------------------------------------------------------
    @property
    def llm_api_key(self) -> str | None:
        return self.openrouter_api_key or self.openai_api_key

    @property
    def resolved_llm_base_url(self) -> str | None:
        if self.llm_base_url:
            return self.llm_base_url
        if self.openrouter_api_key:
            return OPENROUTER_BASE_URL
        return None

    @property
    def resolved_embedding_api_key(self) -> str | None:
        return self.embedding_api_key or self.llm_api_key

    @property
    def resolved_embedding_base_url(self) -> str | None:
        return self.embedding_base_url or self.resolved_llm_base_url

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------
    def validate_runtime(self) -> None:
        """Check that all required values are present.

        Call this at application startup (not at import time) so that
        tests can build settings before validation runs.
        """
        if not self.llm_api_key:
            raise ConfigurationError(
                "No model provider credential. Set OPENROUTER_API_KEY or OPENAI_API_KEY."
            )
        if not self.resolved_embedding_api_key:
            raise ConfigurationError("No embedding credential. Set EMBEDDING_API_KEY.")
        if self.webhook_enabled and not self.n8n_webhook_url:
            raise ConfigurationError("WEBHOOK_ENABLED is true but N8N_WEBHOOK_URL is not set.")
        if abs(self.vector_weight + self.lexical_weight - 1.0) > 1e-9:
            raise ConfigurationError("VECTOR_WEIGHT and LEXICAL_WEIGHT must sum to 1.0.")


@lru_cache
def get_settings() -> Settings:
    """Return the cached Settings singleton."""
    return Settings()

"""
Application configuration loaded from environment variables.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralised application settings."""

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    openai_api_key: SecretStr | None = Field(default=None, alias="OPENAI_API_KEY")
    # Point at an OpenAI-compatible server, e.g. http://localhost:11434/v1 for Ollama.
    openai_base_url: str | None = Field(default=None, alias="OPENAI_BASE_URL")
    llm_model_name: str = Field(default="gpt-4.1-mini", alias="LLM_MODEL_NAME")
    llm_temperature: float = Field(default=0.0, alias="LLM_TEMPERATURE")
    embedding_model_name: str = Field(default="text-embedding-3-small", alias="EMBEDDING_MODEL_NAME")
    embed_batch_size: int = Field(default=64, gt=0, alias="EMBED_BATCH_SIZE")

    vector_store_path: str = Field(default="./data/vectorstore.json", alias="VECTOR_STORE_PATH")

    default_top_k: int = Field(default=5, ge=0, alias="DEFAULT_TOP_K")
    max_context_chars: int = Field(default=8000, gt=0, alias="MAX_CONTEXT_CHARS")
    min_chunk_chars: int = Field(default=0, ge=0, alias="MIN_CHUNK_CHARS")

    request_timeout_sec: float | None = Field(default=60.0, gt=0, alias="REQUEST_TIMEOUT_SEC")


settings = Settings()


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure base logging for the package.
    """
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
    )
    return logging.getLogger("docrag")


def public_settings(config: Settings | None = None) -> Dict[str, Any]:
    """
    Return settings without secrets for safe logging/inspection.
    """
    return (config or settings).model_dump(
        exclude={"openai_api_key"},
        exclude_none=True,
    )


__all__ = ["Settings", "settings", "setup_logging", "public_settings"]

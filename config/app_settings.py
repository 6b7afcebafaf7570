# ruff: noqa: E501
import os
from typing import Annotated, Any, Literal

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # --- Core Settings ---
    SITE_NAME: Annotated[str, Field(default="AI Workout Planner", description="Public name of the service.")]

    # --- Logging ---
    LOG_LEVEL: Annotated[str, Field(default="INFO", description="Logging level for the application (e.g., DEBUG, INFO, WARNING).")]

    # --- Web Server & API ---
    WEB_SERVER_HOST: Annotated[str, Field(default="0.0.0.0", description="Host for the web server to bind to.")]
    WEB_SERVER_PORT: Annotated[int, Field(default=8000, description="Port for the web server to bind to.")]
    CORS_ALLOW_ORIGINS: Annotated[list[str], Field(default_factory=list, description="Origins allowed to call the HTTP API.")]

    # --- Text generation (LLM) ---
    LLM_API_KEY: Annotated[str, Field(default="", validate_default=True, description="API key for the text generation provider.")]
    LLM_API_URL: Annotated[str, Field(default="https://api.openai.com/v1", description="Base URL for the OpenAI-compatible chat completions API.")]
    LLM_MODEL: Annotated[str, Field(default="gpt-4o-mini", description="Chat model used to generate workout plans.")]
    LLM_MAX_TOKENS: Annotated[int, Field(default=2000, description="Maximum completion tokens per generation request.")]
    LLM_TEMPERATURE: Annotated[float, Field(default=0.7, description="Sampling temperature for workout generation.")]
    LLM_TIMEOUT: Annotated[float, Field(default=60.0, description="Timeout in seconds for a single completion call.")]
    LLM_MAX_RETRIES: Annotated[int, Field(default=0, description="Retries performed by the SDK itself before an error reaches the orchestrator.")]
    RESPONSE_LANGUAGE: Annotated[str, Field(default="English", description="Language the model is asked to answer in.")]

    # --- Illustrations ---
    IMAGE_PROVIDER: Annotated[Literal["openai", "http", "none"], Field(default="none", description="Backend used for exercise illustrations.")]
    IMAGE_MODEL: Annotated[str, Field(default="dall-e-3", description="Image model for the OpenAI image backend.")]
    IMAGE_SIZE: Annotated[str, Field(default="1024x1024", description="Requested illustration size.")]
    IMAGE_RESPONSE_FORMAT: Annotated[Literal["url", "b64_json"], Field(default="b64_json", description="Return external URLs or inline data URIs.")]
    IMAGE_API_URL: Annotated[str, Field(default="", description="Endpoint of the HTTP text-to-image backend.")]
    IMAGE_API_KEY: Annotated[str, Field(default="", description="Bearer token for the HTTP text-to-image backend.")]
    IMAGE_TIMEOUT: Annotated[float, Field(default=60.0, description="Timeout in seconds for a single illustration request.")]
    IMAGE_MAX_RETRIES: Annotated[int, Field(default=2, description="Retries for the HTTP image backend on 429 and 5xx responses.")]
    IMAGE_BACKOFF_BASE: Annotated[float, Field(default=0.5, description="Initial backoff in seconds between HTTP image retries.")]
    IMAGE_BACKOFF_CAP: Annotated[float, Field(default=5.0, description="Maximum backoff in seconds between HTTP image retries.")]

    # --- Generation orchestration ---
    GENERATION_MIN_INTERVAL: Annotated[float, Field(default=1.0, description="Minimum seconds between outbound text generation calls.")]
    RESPONSE_CACHE_TTL: Annotated[int, Field(default=300, description="Seconds a generated plan is reused for an identical request.")]
    RESPONSE_CACHE_MAXSIZE: Annotated[int, Field(default=128, description="Maximum number of cached plans.")]
    ERROR_LOG_SIZE: Annotated[int, Field(default=10, description="Number of most recent generation failures kept in memory.")]
    RETRY_ON_TRUNCATION: Annotated[bool, Field(default=True, description="Retry once with a smaller request when the model output was cut off.")]

    # --- HTTP rate limiting ---
    RATE_LIMIT: Annotated[int, Field(default=10, description="Generation requests allowed per client within the window.")]
    RATE_LIMIT_WINDOW: Annotated[int, Field(default=3600, description="Fixed rate limit window in seconds.")]

    # --- Plan storage ---
    STORAGE_BACKEND: Annotated[Literal["memory", "redis"], Field(default="memory", description="Backend for the tiered plan stores.")]
    STORAGE_PRIMARY_MAX_BYTES: Annotated[int, Field(default=2 * 1024 * 1024, description="Largest payload written to the primary store.")]
    STORAGE_SECONDARY_MAX_BYTES: Annotated[int, Field(default=5 * 1024 * 1024, validate_default=True, description="Largest payload written to the secondary store.")]
    STORAGE_PRIMARY_QUOTA: Annotated[int, Field(default=5 * 1024 * 1024, description="Total byte quota of the primary store.")]
    STORAGE_SECONDARY_QUOTA: Annotated[int, Field(default=10 * 1024 * 1024, description="Total byte quota of the secondary store.")]
    STORAGE_SECONDARY_TTL: Annotated[int, Field(default=3600, description="Lifetime in seconds of entries in the secondary (session) store.")]
    STORAGE_KEY_PREFIX: Annotated[str, Field(default="generatedWorkout_", description="Key prefix of stored plans.")]
    STORAGE_ERROR_LOG_KEY: Annotated[str, Field(default="workoutErrorLogs", description="Key of the persisted error log evicted under pressure.")]

    # --- Persistence ---
    PERSISTENCE_BACKEND: Annotated[Literal["memory", "redis"], Field(default="memory", description="Backend for plans, favorites, history and preferences.")]
    PLAN_HISTORY_LIMIT: Annotated[int, Field(default=50, description="Default page size for workout history.")]

    # --- Redis ---
    REDIS_URL: Annotated[str, Field(default="redis://redis:6379", description="Base Redis URL; the database index is appended per store.")]
    REDIS_STORAGE_DB: Annotated[int, Field(default=1, description="Redis database index for plan storage.")]
    REDIS_PERSISTENCE_DB: Annotated[int, Field(default=2, description="Redis database index for persistence.")]

    @field_validator("LLM_API_KEY", mode="before")
    @classmethod
    def _populate_llm_api_key(cls, value: str | None) -> str:
        if value:
            return value
        return os.environ.get("OPENAI_API_KEY", "")

    @field_validator("STORAGE_SECONDARY_MAX_BYTES")
    @classmethod
    def _secondary_not_smaller(cls, value: int, info: Any) -> int:
        primary = info.data.get("STORAGE_PRIMARY_MAX_BYTES")
        if primary is not None and value < primary:
            raise ValueError("STORAGE_SECONDARY_MAX_BYTES must not be smaller than STORAGE_PRIMARY_MAX_BYTES")
        return value

    def model_post_init(self, __context: Any) -> None:
        super().model_post_init(__context)
        if not self.LLM_API_KEY:
            logger.warning("LLM_API_KEY is not configured; workout generation requests will be rejected until it is set.")

    def redis_url_for(self, db: int) -> str:
        return f"{self.REDIS_URL.rstrip('/')}/{db}"


settings = Settings()

from collections.abc import Mapping
from typing import Any, Protocol

import openai
from loguru import logger
from openai import AsyncOpenAI

from config.app_settings import settings
from core.exceptions import (
    ConfigurationError,
    NetworkError,
    RateLimitedError,
    UpstreamServiceError,
    UpstreamTimeoutError,
)
from core.generation.prompts import SYSTEM_MESSAGE
from core.schemas import Completion

DEFAULT_RETRY_AFTER = 60


class TextGenerationClient(Protocol):
    async def complete(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> Completion: ...


def retry_after_seconds(headers: Mapping[str, str] | None, default: int = DEFAULT_RETRY_AFTER) -> int:
    if not headers:
        return default
    raw = headers.get("retry-after") or headers.get("Retry-After")
    if not raw:
        return default
    try:
        return max(1, int(float(raw)))
    except ValueError:
        return default


def _response_headers(exc: openai.APIStatusError) -> Mapping[str, str] | None:
    response = getattr(exc, "response", None)
    return getattr(response, "headers", None)


class OpenAITextClient:
    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        *,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        self.api_key = settings.LLM_API_KEY if api_key is None else api_key
        self.model = model or settings.LLM_MODEL
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key) or self._client is not None

    def _get_client(self) -> AsyncOpenAI:
        if not self.configured:
            raise ConfigurationError(details="LLM_API_KEY is not set")
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=settings.LLM_API_URL or None,
                timeout=settings.LLM_TIMEOUT,
                max_retries=settings.LLM_MAX_RETRIES,
            )
        return self._client

    async def complete(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> Completion:
        client = self._get_client()
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt or SYSTEM_MESSAGE},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": max_tokens or settings.LLM_MAX_TOKENS,
            "temperature": settings.LLM_TEMPERATURE if temperature is None else temperature,
            "response_format": {"type": "json_object"},
        }
        try:
            response = await client.chat.completions.create(**kwargs)
        except openai.RateLimitError as exc:
            retry_after = retry_after_seconds(_response_headers(exc))
            logger.warning(f"llm.rate_limited model={self.model} retry_after={retry_after}")
            raise RateLimitedError(retry_after=retry_after) from exc
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            logger.error(f"llm.auth_failed model={self.model} status={exc.status_code}")
            raise ConfigurationError(details="AI provider rejected the credentials") from exc
        except openai.APITimeoutError as exc:
            logger.warning(f"llm.timeout model={self.model} timeout={settings.LLM_TIMEOUT}")
            raise UpstreamTimeoutError(timeout=settings.LLM_TIMEOUT) from exc
        except openai.APIConnectionError as exc:
            logger.warning(f"llm.connection_failed model={self.model} error={exc}")
            raise NetworkError("Could not reach the AI service") from exc
        except openai.APIStatusError as exc:
            logger.warning(f"llm.api_error model={self.model} status={exc.status_code}")
            raise UpstreamServiceError(upstream_status=exc.status_code) from exc

        return self._to_completion(response)

    @staticmethod
    def _to_completion(response: Any) -> Completion:
        choices = getattr(response, "choices", None) or []
        first_choice = choices[0] if choices else None
        message = getattr(first_choice, "message", None)
        text = getattr(message, "content", None) or ""
        finish_reason = getattr(first_choice, "finish_reason", None)
        usage_obj = getattr(response, "usage", None)
        usage: dict[str, int] = {}
        for field in ("prompt_tokens", "completion_tokens", "total_tokens"):
            value = getattr(usage_obj, field, None)
            if isinstance(value, int):
                usage[field] = value
        logger.debug(
            "llm.completion finish_reason={} content_len={} total_tokens={}",
            finish_reason,
            len(text),
            usage.get("total_tokens", "na"),
        )
        return Completion(text=text, finish_reason=finish_reason, usage=usage)


__all__ = ["OpenAITextClient", "TextGenerationClient", "retry_after_seconds"]

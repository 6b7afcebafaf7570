import asyncio
import base64
from typing import Any

import httpx
import openai
from loguru import logger
from openai import AsyncOpenAI

from config.app_settings import settings
from core.exceptions import (
    ConfigurationError,
    ImageRejectedError,
    NetworkError,
    RateLimitedError,
    UpstreamServiceError,
    UpstreamTimeoutError,
)
from core.generation.illustrations import ImageGenerationClient
from core.services.llm_client import retry_after_seconds

CONTENT_POLICY_CODES = {"content_policy_violation", "moderation_blocked"}


def to_data_uri(payload: bytes, content_type: str = "image/png") -> str:
    return f"data:{content_type};base64,{base64.b64encode(payload).decode('ascii')}"


class OpenAIImageClient:
    def __init__(self, client: AsyncOpenAI | None = None, *, api_key: str | None = None) -> None:
        self.api_key = settings.LLM_API_KEY if api_key is None else api_key
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError(details="LLM_API_KEY is not set")
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=settings.LLM_API_URL or None,
                timeout=settings.IMAGE_TIMEOUT,
            )
        return self._client

    async def generate(self, prompt: str) -> str:
        client = self._get_client()
        try:
            response = await client.images.generate(
                model=settings.IMAGE_MODEL,
                prompt=prompt,
                size=settings.IMAGE_SIZE,  # type: ignore[arg-type]
                response_format=settings.IMAGE_RESPONSE_FORMAT,
                n=1,
            )
        except openai.BadRequestError as exc:
            if exc.code in CONTENT_POLICY_CODES:
                raise ImageRejectedError(prompt, reason=str(exc.code)) from exc
            raise UpstreamServiceError("Illustration request was rejected", upstream_status=exc.status_code) from exc
        except openai.RateLimitError as exc:
            raise RateLimitedError(retry_after=retry_after_seconds(exc.response.headers)) from exc
        except openai.APITimeoutError as exc:
            raise UpstreamTimeoutError("Illustration request timed out", timeout=settings.IMAGE_TIMEOUT) from exc
        except openai.APIConnectionError as exc:
            raise NetworkError("Could not reach the image service") from exc
        except openai.APIStatusError as exc:
            raise UpstreamServiceError("Image service error", upstream_status=exc.status_code) from exc

        data = response.data or []
        if not data:
            raise UpstreamServiceError("Image service returned no image")
        image = data[0]
        if image.b64_json:
            return f"data:image/png;base64,{image.b64_json}"
        if image.url:
            return image.url
        raise UpstreamServiceError("Image service returned no image")


class HTTPImageClient:
    """Text-to-image endpoint returning raw image bytes, retried on 429 and 5xx."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        url: str | None = None,
        api_key: str | None = None,
        max_retries: int | None = None,
        initial_delay: float | None = None,
        max_delay: float | None = None,
    ) -> None:
        self.url = url or settings.IMAGE_API_URL
        self.api_key = settings.IMAGE_API_KEY if api_key is None else api_key
        self.max_retries = settings.IMAGE_MAX_RETRIES if max_retries is None else max_retries
        self.initial_delay = settings.IMAGE_BACKOFF_BASE if initial_delay is None else initial_delay
        self.max_delay = settings.IMAGE_BACKOFF_CAP if max_delay is None else max_delay
        self.backoff_factor = 2.0
        self.client = client or httpx.AsyncClient(timeout=settings.IMAGE_TIMEOUT)

    async def aclose(self) -> None:
        try:
            await self.client.aclose()
        except Exception:  # pragma: no cover - best effort
            logger.exception("Failed to close httpx client")

    async def generate(self, prompt: str) -> str:
        if not self.url:
            raise ConfigurationError(details="IMAGE_API_URL is not set")
        headers: dict[str, str] = {"Accept": "image/*"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload: dict[str, Any] = {"inputs": prompt}
        attempts = max(1, self.max_retries + 1)
        delay = self.initial_delay

        for attempt in range(1, attempts + 1):
            try:
                response = await self.client.post(self.url, json=payload, headers=headers)
            except httpx.TimeoutException as exc:
                if attempt >= attempts:
                    raise UpstreamTimeoutError("Illustration request timed out", timeout=settings.IMAGE_TIMEOUT) from exc
                logger.warning(f"Retrying POST {self.url} after timeout (attempt {attempt}/{attempts})")
                await self._sleep(delay)
                delay = self._next_delay(delay)
                continue
            except httpx.RequestError as exc:
                if attempt >= attempts:
                    raise NetworkError(f"{type(exc).__name__} on POST {self.url}: {exc}") from exc
                logger.warning(
                    f"Retrying POST {self.url} after transport error {type(exc).__name__} (attempt {attempt}/{attempts})"
                )
                await self._sleep(delay)
                delay = self._next_delay(delay)
                continue

            status = response.status_code
            if status == 200:
                content_type = response.headers.get("content-type", "image/png").split(";")[0]
                return to_data_uri(response.content, content_type)
            if status in {400, 451} and self._is_policy_rejection(response):
                raise ImageRejectedError(prompt, reason=response.text[:200])
            if status in {401, 403}:
                raise ConfigurationError(details="Image service rejected the credentials")
            retryable = status == 429 or status >= 500
            if retryable and attempt < attempts:
                logger.warning(f"Retrying POST {self.url} after HTTP {status} (attempt {attempt}/{attempts})")
                await self._sleep(delay)
                delay = self._next_delay(delay)
                continue
            if status == 429:
                raise RateLimitedError(retry_after=retry_after_seconds(response.headers))
            raise UpstreamServiceError(f"Image service returned HTTP {status}", upstream_status=status)

        raise UpstreamServiceError(f"Exhausted retries for POST {self.url}")

    @staticmethod
    def _is_policy_rejection(response: httpx.Response) -> bool:
        lowered = response.text.lower()
        return any(token in lowered for token in ("policy", "nsfw", "safety", "moderation"))

    @staticmethod
    async def _sleep(delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)

    def _next_delay(self, current: float) -> float:
        if current <= 0:
            return self.initial_delay or 0.0
        next_delay = current * self.backoff_factor
        if self.max_delay:
            next_delay = min(next_delay, self.max_delay)
        return next_delay


def build_image_client() -> ImageGenerationClient | None:
    provider = settings.IMAGE_PROVIDER
    if provider == "openai":
        return OpenAIImageClient()
    if provider == "http":
        return HTTPImageClient()
    return None


__all__ = ["HTTPImageClient", "OpenAIImageClient", "build_image_client", "to_data_uri"]

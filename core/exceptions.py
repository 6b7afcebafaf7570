from typing import Any

from core.enums import ErrorKind

PREVIEW_CHARS = 200


class WorkoutServiceError(Exception):
    kind: ErrorKind = ErrorKind.UNKNOWN
    status_code: int = 500

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "type": str(self.kind)}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidRequestError(WorkoutServiceError):
    kind = ErrorKind.VALIDATION
    status_code = 400


class ConfigurationError(WorkoutServiceError):
    kind = ErrorKind.CONFIGURATION
    status_code = 503

    def __init__(self, message: str = "AI service is not configured", *, details: str | None = None) -> None:
        super().__init__(message, details=details)


class RateLimitedError(WorkoutServiceError):
    kind = ErrorKind.RATE_LIMIT
    status_code = 429

    def __init__(self, retry_after: int | None = None, message: str = "Too many requests, try again later") -> None:
        super().__init__(message)
        self.retry_after = retry_after


class NetworkError(WorkoutServiceError):
    kind = ErrorKind.NETWORK
    status_code = 503


class UpstreamTimeoutError(WorkoutServiceError):
    kind = ErrorKind.TIMEOUT
    status_code = 504

    def __init__(self, message: str = "AI service timed out", *, timeout: float | None = None) -> None:
        super().__init__(message)
        self.timeout = timeout


class UpstreamServiceError(WorkoutServiceError):
    kind = ErrorKind.API_ERROR
    status_code = 503

    def __init__(self, message: str = "AI service error", *, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status


class UpstreamMalformedError(WorkoutServiceError):
    status_code = 502


class NormalizationError(UpstreamMalformedError):
    """Base for every failure raised while turning model text into a plan."""


class EmptyResponseError(NormalizationError):
    kind = ErrorKind.EMPTY_RESPONSE

    def __init__(self, message: str = "AI service returned an empty response") -> None:
        super().__init__(message)


class MalformedJsonError(NormalizationError):
    kind = ErrorKind.MALFORMED_JSON

    def __init__(self, text: str, reason: str = "") -> None:
        self.preview = make_preview(text)
        self.reason = reason
        super().__init__("AI service returned malformed JSON", details=reason or None)


class MissingRequiredFieldError(NormalizationError):
    kind = ErrorKind.MISSING_FIELD

    def __init__(self, field: str, *, index: int | None = None) -> None:
        self.field = field
        self.index = index
        location = field if index is None else f"exercises[{index}].{field}"
        super().__init__(f"AI response is missing required field: {location}")


class EmptyExerciseListError(NormalizationError):
    kind = ErrorKind.EMPTY_EXERCISES

    def __init__(self, message: str = "AI response contains no exercises") -> None:
        super().__init__(message)


class TruncatedResponseError(NormalizationError):
    kind = ErrorKind.TRUNCATED

    def __init__(self, text: str = "") -> None:
        self.preview = make_preview(text)
        super().__init__(
            "AI response was cut off before completion",
            details="Select fewer body parts or a shorter workout and try again",
        )


class ImageRejectedError(WorkoutServiceError):
    """The image backend refused the prompt on content-policy grounds."""

    kind = ErrorKind.API_ERROR
    status_code = 502

    def __init__(self, prompt: str, reason: str = "") -> None:
        super().__init__(f"Illustration rejected: {reason or 'content policy'}")
        self.prompt = prompt
        self.reason = reason


class StorageCapacityExceeded(WorkoutServiceError):
    kind = ErrorKind.STORAGE_CAPACITY

    def __init__(self, key: str, size: int, available: int) -> None:
        super().__init__(f"Not enough space for {key}: need {size} bytes, {available} available")
        self.key = key
        self.size = size
        self.available = available


class NotFoundError(WorkoutServiceError):
    kind = ErrorKind.VALIDATION
    status_code = 404

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


def make_preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    if len(text) <= limit * 2:
        return text
    return f"{text[:limit]}...{text[-limit:]}"


def classify(exc: BaseException) -> ErrorKind:
    if isinstance(exc, WorkoutServiceError):
        return exc.kind
    return ErrorKind.UNKNOWN

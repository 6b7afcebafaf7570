from enum import Enum


class FitnessLevel(str, Enum):
    beginner = "beginner"
    intermediate = "intermediate"
    advanced = "advanced"

    def __str__(self) -> str:
        return self.value


class BodyPart(str, Enum):
    chest = "chest"
    abs = "abs"
    legs = "legs"
    back = "back"
    shoulders = "shoulders"
    arms = "arms"
    fullbody = "fullbody"

    def __str__(self) -> str:
        return self.value


class PlanSource(str, Enum):
    AI = "ai"
    FALLBACK = "fallback"

    def __str__(self) -> str:
        return self.value


class Modification(str, Enum):
    HARDER = "harder"
    EASIER = "easier"
    SHORTER = "shorter"
    LONGER = "longer"

    def __str__(self) -> str:
        return self.value


class StorageTier(int, Enum):
    PRIMARY = 1
    SECONDARY = 2
    STRIPPED = 3


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    CONFIGURATION = "configuration_error"
    RATE_LIMIT = "rate_limit"
    EMPTY_RESPONSE = "empty_response"
    MALFORMED_JSON = "malformed_json"
    MISSING_FIELD = "missing_field"
    EMPTY_EXERCISES = "empty_exercises"
    TRUNCATED = "truncated"
    NETWORK = "network_error"
    TIMEOUT = "timeout"
    API_ERROR = "api_error"
    STORAGE_CAPACITY = "storage_capacity"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value

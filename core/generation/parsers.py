import json
import math
import re
from typing import Any

from core.exceptions import MalformedJsonError

STAR_GLYPHS = ("★", "⭐")
EMPTY_STAR = "☆"
MIN_STARS = 1
MAX_STARS = 5

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.S)
_INT_RE = re.compile(r"-?\d+")


def strip_code_fences(text: str) -> str:
    """Return the body of the first markdown code fence, or ``text`` unchanged."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _extract_json(text: str) -> str | None:
    """Return the outermost JSON object found within ``text``."""
    match = re.search(r"\{.*\}", text, re.S)
    if match:
        return match.group(0)
    return None


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse the model output into a JSON object or raise ``MalformedJsonError``."""
    body = strip_code_fences(text)
    extracted = _extract_json(body)
    if extracted:
        body = extracted
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        raise MalformedJsonError(text, reason=f"{exc.msg} at position {exc.pos}") from exc
    if not isinstance(data, dict):
        raise MalformedJsonError(text, reason=f"top-level value is {type(data).__name__}, expected object")
    return data


def first_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _INT_RE.search(value)
        if match:
            return int(match.group(0))
    return None


def parse_int(value: Any, default: int, *, minimum: int | None = None) -> int:
    """First embedded integer of ``value`` or ``default``."""
    parsed = first_int(value)
    if parsed is None:
        return default
    if minimum is not None and parsed < minimum:
        return default
    return parsed


def parse_stars(value: Any, default: int = 2) -> int:
    """Count star glyphs, accept plain digits, clamp to 1..5."""
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, float) and not math.isfinite(value):
        return default
    if isinstance(value, (int, float)):
        return _clamp(int(value))
    text = str(value)
    stars = sum(text.count(glyph) for glyph in STAR_GLYPHS)
    if stars or EMPTY_STAR in text:
        return _clamp(stars)
    parsed = first_int(text)
    if parsed is None:
        return default
    return _clamp(parsed)


def _clamp(value: int) -> int:
    return max(MIN_STARS, min(MAX_STARS, value))


def parse_reps(value: Any, default: int | str = "10 reps") -> int | str:
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, float):
        return int(value) if math.isfinite(value) and value > 0 else default
    text = str(value).strip()
    if not text:
        return default
    if text.isdigit():
        return int(text)
    return text


def as_text_list(value: Any) -> list[str]:
    """Wrap scalars in a list and drop blank entries."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = [value]
    return [str(item).strip() for item in items if item is not None and str(item).strip()]


def as_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = " ".join(as_text_list(value))
    text = str(value).strip()
    return text or None

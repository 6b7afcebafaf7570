from collections import Counter, deque
from datetime import datetime, timedelta
from typing import Any, Callable

from loguru import logger

from core.exceptions import WorkoutServiceError, classify
from core.schemas import ErrorRecord, ErrorStats, utcnow


class GenerationErrorLog:
    """Most recent generation failures, newest last."""

    def __init__(self, size: int = 10, clock: Callable[[], datetime] = utcnow) -> None:
        self._records: deque[ErrorRecord] = deque(maxlen=size)
        self._clock = clock

    def record(self, exc: BaseException, **context: Any) -> ErrorRecord:
        kind = classify(exc)
        message = exc.message if isinstance(exc, WorkoutServiceError) else str(exc) or type(exc).__name__
        entry = ErrorRecord(kind=str(kind), message=message, occurred_at=self._clock(), context=context)
        self._records.append(entry)
        logger.warning(f"generation_error kind={kind} message={message}")
        return entry

    def recent(self) -> list[ErrorRecord]:
        return list(self._records)

    def stats(self) -> ErrorStats:
        cutoff = self._clock() - timedelta(hours=24)
        records = list(self._records)
        return ErrorStats(
            total=len(records),
            last_24h=sum(1 for record in records if record.occurred_at >= cutoff),
            by_kind=dict(Counter(record.kind for record in records)),
            recent=records,
        )

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

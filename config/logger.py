import logging
import sys
import types

from loguru import logger

from config.app_settings import settings

_CONFIGURED = False


class InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            loguru_level = logger.level(record.levelname).name
        except ValueError:
            loguru_level = record.levelno

        frame: types.FrameType | None = logging.currentframe()
        depth = 2
        logging_file = getattr(logging, "__file__", None)
        while frame and logging_file and frame.f_code.co_filename == logging_file:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(loguru_level, record.getMessage())


class HealthAccessFilter(logging.Filter):
    """Filter out noisy access logs for periodic health checks."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        try:
            message = record.getMessage()
        except Exception:  # noqa: BLE001 - fallback best-effort
            message = ""
        return "GET /health" not in message


def configure_logging() -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return

    logger.remove()
    logger.add(
        sys.stdout,
        level=_resolve_level(settings.LOG_LEVEL),
        colorize=True,
        backtrace=False,
        diagnose=False,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO, force=True)

    access_logger = logging.getLogger("uvicorn.access")
    access_logger.handlers = []
    access_logger.addFilter(HealthAccessFilter())
    access_logger.propagate = True

    _suppress_third_party_logs()
    _CONFIGURED = True


def _suppress_third_party_logs() -> None:
    suppress_map: dict[str, str] = {
        "openai": "WARNING",
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "asyncio": "WARNING",
        "redis": "WARNING",
        "uvicorn": "WARNING",
        "uvicorn.error": "WARNING",
        "fastapi": "WARNING",
    }
    for logger_name, level in suppress_map.items():
        target = logging.getLogger(logger_name)
        target.handlers = []
        target.setLevel(level)
        target.propagate = True


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level

    mapping = logging.getLevelNamesMapping()
    resolved = mapping.get(level.upper())
    if isinstance(resolved, int):
        return resolved

    raise ValueError(f"Unknown log level: {level}")

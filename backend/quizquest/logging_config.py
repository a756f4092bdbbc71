import logging
from logging.config import dictConfig
from typing import Any, Dict, Optional

from .config import Settings, get_settings

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
APP_LOGGER = "quizquest"
TELEMETRY_LOGGER = "quizquest.telemetry"
HTTP_DEBUG_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _level(value: str) -> str:
    level = value.strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"Unknown log level: {value!r}")
    return level


def build_logging_config(settings: Settings) -> Dict[str, Any]:
    """dictConfig for the API: third-party loggers stay at the root level,
    QuizQuest loggers and the telemetry stream are tuned separately."""
    loggers: Dict[str, Dict[str, Any]] = {
        APP_LOGGER: {"level": _level(settings.log_level)},
        TELEMETRY_LOGGER: {"level": _level(settings.telemetry_log_level)},
    }
    if settings.debug_http:
        for name in HTTP_DEBUG_LOGGERS:
            loggers[name] = {"level": "DEBUG"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": DEFAULT_LOG_FORMAT,
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "loggers": loggers,
        "root": {
            "handlers": ["default"],
            "level": _level(settings.root_log_level),
        },
    }


def configure_logging(settings: Optional[Settings] = None) -> None:
    dictConfig(build_logging_config(settings or get_settings()))

"""Structured logging for the downloader and its HTTP surface."""

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import PurePath

import orjson
import structlog
from asgi_correlation_id import correlation_id
from beartype import beartype

from multipart_downloader.core.settings import settings

# Event keys holding byte counts, shown humanized in debug output.
BYTE_FIELDS = frozenset({"size", "written", "packet_size"})
EVENT_MAX_LENGTH = 80


class LoggerError(Exception):
    """Exception for logger related issues."""


class LogLevel(StrEnum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogIcon(StrEnum):
    """Icons prefixed to events in debug output."""

    DEFAULT = "📋"
    SUCCESS = "✅"
    ERROR = "❌"
    WARNING = "⚠️"
    START = "🚀"
    COMPLETE = "✨"
    RECOVERY = "♻️"
    HEALTHCHECK = "❤️"
    WORKER = "👷"
    FOLDER = "📁"
    FILE = "📄"
    STREAMING = "📡"
    UPLOAD = "📤"
    DOWNLOAD = "📥"


@dataclass
class LoggerConfig:
    debug: bool = field(default_factory=lambda: settings.DEBUG)
    log_level: LogLevel = field(default_factory=lambda: LogLevel(settings.LOG_LEVEL))


def humanize_bytes(size: int) -> str:
    """1536 -> '1.5 KiB'."""
    if abs(size) < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KiB", "MiB"):
        if abs(value) < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GiB"


def add_upload_id(logger, method_name: str, event_dict: dict) -> dict:
    """Tag events with the id of the upload request being decoded."""
    if request_id := correlation_id.get():
        event_dict["upload_id"] = request_id
    return event_dict


class BusinessRulesProcessor:
    """
    Apply business rules to log events.

    Business Rules:
    - Rule 1: Event messages are uppercased and capped at EVENT_MAX_LENGTH characters.
    - Rule 2: The icon kwarg, if provided, must be a LogIcon member.
    - Rule 3: Paths are logged as plain strings.
    - Rule 4: In DEBUG mode, icons prefix the event and byte counts are humanized.
    """

    def __init__(self, debug: bool) -> None:
        self.debug = debug

    @beartype
    def __call__(self, logger, name: str, event_dict: dict) -> dict:
        try:
            icon = LogIcon(event_dict.pop("icon", LogIcon.DEFAULT))
        except ValueError as err:
            raise LoggerError("Wrong Icon chosen, please choose a valid LogIcon enum member") from err

        event = str(event_dict.get("event", ""))[:EVENT_MAX_LENGTH].upper()
        event_dict["event"] = f"{icon.value} {event}" if self.debug else event

        for key, value in event_dict.items():
            if isinstance(value, PurePath):
                event_dict[key] = str(value)
            elif self.debug and key in BYTE_FIELDS and isinstance(value, int):
                event_dict[key] = humanize_bytes(value)
        return event_dict


def dev_pipeline_renderer(logger, name: str, event_dict: dict) -> str:
    """Render one pipe-separated line: time | level | event | extras | file:line."""
    timestamp = event_dict.pop("timestamp", "")
    level = str(event_dict.pop("level", LogLevel.INFO.value)).upper()
    event = event_dict.pop("event", "")
    filename = event_dict.pop("filename", "")
    lineno = event_dict.pop("lineno", "")

    extras = " | ".join(f"{key}={value}" for key, value in event_dict.items())
    location = f"{filename}:{lineno}" if filename else ""
    return " | ".join(filter(None, [timestamp, level, event, extras, location]))


def build_processors(config: LoggerConfig) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
            additional_ignores=["logger"],
        ),
        add_upload_id,
        BusinessRulesProcessor(debug=config.debug),
    ]
    if config.debug:
        return processors + [dev_pipeline_renderer]
    return processors + [
        structlog.processors.dict_tracebacks,
        structlog.processors.JSONRenderer(serializer=orjson.dumps),
    ]


def setup_logging(config: LoggerConfig) -> None:
    """Configure structlog: readable lines in debug, orjson lines otherwise."""
    structlog.configure(
        processors=build_processors(config),
        logger_factory=structlog.PrintLoggerFactory() if config.debug else structlog.BytesLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(config.log_level.value)),
        cache_logger_on_first_use=True,
    )


setup_logging(LoggerConfig())

logger = structlog.get_logger()

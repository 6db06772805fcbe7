"""Structured logging utilities for Upscalewright.

Provides:
- Human-readable text format for development
- JSON format for machine parsing
- Component-specific log levels
- Rotating log files
- Begin/end markers with durations for long-running operations

Example usage:
    >>> from upscalewright.utils.logging import get_logger, LogConfig, configure_logging
    >>>
    >>> configure_logging(LogConfig(log_level="DEBUG", component_levels={"pipeline": "INFO"}))
    >>> logger = get_logger("pipeline")
    >>> logger.info("Upscaling tile", tile=3, total=16)
"""

import copy
import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Literal, Optional

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["text", "json"]

ROOT_LOGGER_NAME = "upscalewright"
_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class LogConfig:
    """Configuration for Upscalewright logging.

    Attributes:
        log_level: Default log level for all components
        log_format: Output format ('text' for human-readable, 'json' for structured)
        log_file: Optional file path for log output
        component_levels: Component-specific log levels
        max_file_size_mb: Maximum log file size before rotation
        backup_count: Number of rotated log files to keep
        include_timestamp: Whether to include timestamps in text output
        include_source: Whether to include source file/line information
    """

    log_level: LogLevel = "INFO"
    log_format: LogFormat = "text"
    log_file: Optional[str] = None
    component_levels: Dict[str, LogLevel] = field(default_factory=dict)
    max_file_size_mb: int = 10
    backup_count: int = 5
    include_timestamp: bool = True
    include_source: bool = False

    def __post_init__(self) -> None:
        if self.log_level.upper() not in _VALID_LEVELS:
            raise ValueError(
                f"Invalid log_level '{self.log_level}'. "
                f"Must be one of: {sorted(_VALID_LEVELS)}"
            )
        if self.log_format not in ("text", "json"):
            raise ValueError(
                f"Invalid log_format '{self.log_format}'. Must be 'text' or 'json'"
            )
        for component, level in self.component_levels.items():
            if level.upper() not in _VALID_LEVELS:
                raise ValueError(
                    f"Invalid log level '{level}' for component '{component}'"
                )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogConfig":
        """Create LogConfig from dictionary."""
        known = {
            "log_level", "log_format", "log_file", "component_levels",
            "max_file_size_mb", "backup_count", "include_timestamp",
            "include_source",
        }
        return cls(**{k: v for k, v in data.items() if k in known})


class JSONFormatter(logging.Formatter):
    """Formats each record as one JSON object per line.

    {"timestamp": "...Z", "level": "INFO", "component": "pipeline",
     "message": "Starting upscale image", "operation": "upscale image"}
    """

    def __init__(self, include_source: bool = False) -> None:
        super().__init__()
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "component": record.name.split(".")[-1],
            "message": record.getMessage(),
        }

        if self.include_source:
            log_entry["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            log_entry.update(extra_fields)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Human-readable formatter.

    2026-01-12 10:30:45 | INFO     | upscalewright.pipeline | Completed upscale image [duration_seconds=1.42]
    """

    def __init__(
        self,
        include_timestamp: bool = True,
        include_source: bool = False,
    ) -> None:
        self.include_timestamp = include_timestamp
        self.include_source = include_source

        if include_timestamp:
            fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        else:
            fmt = "%(levelname)-8s | %(name)s | %(message)s"

        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy so other handlers see the original message
        record = copy.copy(record)
        message = record.getMessage()
        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            extra_str = ", ".join(f"{k}={v}" for k, v in extra_fields.items())
            message = f"{message} [{extra_str}]"
        if self.include_source:
            message = f"{message} ({record.filename}:{record.lineno})"
        record.msg = message
        record.args = None
        return super().format(record)


class UpscalewrightLogger(logging.LoggerAdapter):
    """Logger adapter accepting structured keyword fields.

    Any keyword argument other than the standard logging ones is collected
    into ``extra_fields`` and rendered by the formatters.
    """

    def __init__(
        self,
        logger: logging.Logger,
        component: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(logger, extra or {})
        self.component = component

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra_fields = {}
        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra_fields[key] = kwargs.pop(key)

        if self.extra:
            extra_fields.update(self.extra)

        kwargs.setdefault("extra", {})
        kwargs["extra"]["extra_fields"] = extra_fields
        return msg, kwargs

    def processing_start(self, operation: str, **kwargs: Any) -> datetime:
        """Log the begin marker of an operation and return its timestamp."""
        self.info(f"Starting {operation}", operation=operation, **kwargs)
        return datetime.now(timezone.utc)

    def processing_complete(
        self,
        operation: str,
        started_at: Optional[datetime] = None,
        **kwargs: Any,
    ) -> None:
        """Log the end marker of an operation, with its duration if known."""
        if started_at is not None:
            duration = (datetime.now(timezone.utc) - started_at).total_seconds()
            kwargs["duration_seconds"] = round(duration, 3)
        self.info(f"Completed {operation}", operation=operation, **kwargs)

    def tile_processed(self, index: int, total: int, **kwargs: Any) -> None:
        """Log completion of one tile (debug level)."""
        self.debug(f"Processed tile {index}/{total}", tile=index, total=total, **kwargs)

    def frame_processed(self, frame_number: int, total_frames: Optional[int] = None, **kwargs: Any) -> None:
        """Log completion of one frame (debug level)."""
        suffix = f"/{total_frames}" if total_frames is not None else ""
        self.debug(
            f"Processed frame {frame_number}{suffix}",
            frame=frame_number,
            **kwargs,
        )


_log_config: Optional[LogConfig] = None
_configured_loggers: Dict[str, UpscalewrightLogger] = {}


def _build_formatter(config: LogConfig) -> logging.Formatter:
    if config.log_format == "json":
        return JSONFormatter(include_source=config.include_source)
    return TextFormatter(
        include_timestamp=config.include_timestamp,
        include_source=config.include_source,
    )


def configure_logging(config: Optional[LogConfig] = None) -> None:
    """Configure handlers and levels of the package root logger.

    Called once at application startup; calling again replaces the handlers.
    """
    global _log_config

    if config is None:
        config = LogConfig()
    _log_config = config

    level = getattr(logging, config.log_level.upper())
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    formatter = _build_formatter(config)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)

    for component, component_level in config.component_levels.items():
        logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}").setLevel(
            getattr(logging, component_level.upper())
        )

    root_logger.propagate = False


def get_logger(component: str) -> UpscalewrightLogger:
    """Get the structured logger for a component.

    Example:
        >>> logger = get_logger("pipeline")
        >>> logger.info("Tile plan ready", tiles=16)
    """
    if component in _configured_loggers:
        return _configured_loggers[component]

    base_logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")
    if _log_config and component in _log_config.component_levels:
        base_logger.setLevel(
            getattr(logging, _log_config.component_levels[component].upper())
        )

    logger = UpscalewrightLogger(base_logger, component)
    _configured_loggers[component] = logger
    return logger


def get_config() -> Optional[LogConfig]:
    """Get current logging configuration."""
    return _log_config


def set_level(level: LogLevel, component: Optional[str] = None) -> None:
    """Set log level dynamically for a component, or the root when None."""
    name = f"{ROOT_LOGGER_NAME}.{component}" if component else ROOT_LOGGER_NAME
    logging.getLogger(name).setLevel(getattr(logging, level.upper()))


def configure_from_cli(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
) -> LogConfig:
    """Configure logging from CLI arguments."""
    config = LogConfig(
        log_level=log_level.upper() if log_level else "INFO",
        log_format=log_format if log_format in ("text", "json") else "text",
        log_file=log_file,
    )
    configure_logging(config)
    return config


def add_logging_arguments(parser) -> None:
    """Add --log-level, --log-format and --log-file to an argparse parser."""
    parser.add_argument(
        "--log-level",
        type=str,
        choices=sorted(_VALID_LEVELS),
        default="INFO",
        help="Set logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        choices=["text", "json"],
        default="text",
        help="Set logging format (default: text)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Path to log file (default: stderr only)",
    )

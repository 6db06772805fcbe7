"""
Upscalewright Utilities Package
"""

from .logging import (
    LogConfig,
    UpscalewrightLogger,
    JSONFormatter,
    TextFormatter,
    configure_logging,
    configure_from_cli,
    add_logging_arguments,
    get_logger,
    get_config,
    set_level,
)

__all__ = [
    "LogConfig",
    "UpscalewrightLogger",
    "JSONFormatter",
    "TextFormatter",
    "configure_logging",
    "configure_from_cli",
    "add_logging_arguments",
    "get_logger",
    "get_config",
    "set_level",
]

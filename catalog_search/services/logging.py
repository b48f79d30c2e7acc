"""Logging setup: structlog on top of stdlib logging.

Console output goes to stderr so search results printed on stdout stay
machine-readable. Log files, when enabled, are always JSON.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any

import structlog

APP_LOG = "app.log"
ERROR_LOG = "error.log"
APP_LOG_MAX_BYTES = 10 * 1024 * 1024
ERROR_LOG_MAX_BYTES = 5 * 1024 * 1024

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def _rotating_handler(path: Path, level: int, max_bytes: int, backup_count: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


class LoggingService:
    """Configures where log events go and how they are rendered."""

    def __init__(
        self,
        log_level: str = "INFO",
        log_dir: Path | None = None,
        console: bool = True,
    ) -> None:
        """Initialize the logging service.

        Args:
            log_level: The minimum log level to capture
            log_dir: Directory for log files (None for console only)
            console: Whether to log to stderr
        """
        self.log_level = log_level.upper()
        self.log_dir = log_dir
        self.console = console
        self.is_development = os.getenv("ENVIRONMENT", "development") == "development"

    @property
    def numeric_level(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)

    def configure(self) -> None:
        """Install handlers on the root logger and configure structlog."""
        self._configure_handlers()

        structlog.configure(
            processors=self._get_processors(),
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def _configure_handlers(self) -> None:
        level = self.numeric_level
        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.setLevel(level)

        if self.console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level)
            console_handler.setFormatter(logging.Formatter("%(message)s"))
            root_logger.addHandler(console_handler)

        if self.log_dir:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            root_logger.addHandler(_rotating_handler(self.log_dir / APP_LOG, level, APP_LOG_MAX_BYTES, 5))
            root_logger.addHandler(_rotating_handler(self.log_dir / ERROR_LOG, logging.ERROR, ERROR_LOG_MAX_BYTES, 3))

        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

    def _get_processors(self) -> list[Any]:
        processors: list[Any] = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]

        # A development console without log files is the only readable renderer
        if self.is_development and not self.log_dir:
            processors.append(structlog.dev.ConsoleRenderer(colors=False))
        else:
            processors.append(structlog.processors.JSONRenderer())
        return processors

    def get_logger(self, name: str | None = None) -> structlog.stdlib.BoundLogger:
        return structlog.stdlib.get_logger(name)


def setup_logging(
    log_level: str = "INFO",
    log_dir: Path | None = None,
    environment: str | None = None,
    console: bool = True,
) -> LoggingService:
    """Configure application logging.

    Args:
        log_level: Minimum log level to capture
        log_dir: Directory for log files (None for console only)
        environment: "development" or "production"; sets ENVIRONMENT
        console: Whether to log to stderr

    Returns:
        The configured LoggingService
    """
    if environment:
        os.environ["ENVIRONMENT"] = environment

    service = LoggingService(log_level=log_level, log_dir=log_dir, console=console)
    service.configure()
    return service

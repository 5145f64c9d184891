"""Logging configuration for mcctree."""

import json
import logging
import logging.handlers
import os
import re
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

ROOT_LOGGER_NAME = "mcctree"


class LogLevel(str, Enum):
    """Log levels for configuration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    SIMPLE = "simple"
    DETAILED = "detailed"
    JSON = "json"


@dataclass
class LoggingConfig:
    """Configuration for logging system."""

    level: LogLevel = LogLevel.WARNING
    format_type: LogFormat = LogFormat.DETAILED
    enable_file_logging: bool = False
    enable_console_logging: bool = True
    log_directory: str = "~/.mcctree/logs"
    log_filename: str = "mcctree.log"
    max_file_size_mb: int = 10
    backup_count: int = 5
    console_colors: bool = True
    log_api_requests: bool = False
    sensitive_data_patterns: List[str] = field(
        default_factory=lambda: [
            r"1//[0-9A-Za-z_\-]{10,}",  # OAuth refresh tokens
            r"ya29\.[0-9A-Za-z_\-]+",  # OAuth access tokens
            r"GOCSPX-[0-9A-Za-z_\-]+",  # OAuth client secrets
            r"(developer_token|client_secret|refresh_token)(['\"]?\s*[:=]\s*['\"]?)[^\s'\",}]+",
        ]
    )

    def __post_init__(self) -> None:
        """Ensure collections are properly initialized."""
        if self.sensitive_data_patterns is None:
            self.sensitive_data_patterns = []

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LoggingConfig":
        """Create a logging configuration from the ``logging`` config section."""
        config = cls()
        if "level" in data:
            config.level = LogLevel(str(data["level"]).upper())
        if "format" in data:
            config.format_type = LogFormat(str(data["format"]).lower())
        if "file" in data:
            config.enable_file_logging = bool(data["file"])
        if "directory" in data:
            config.log_directory = str(data["directory"])
        if "colors" in data:
            config.console_colors = bool(data["colors"])
        if "log_api_requests" in data:
            config.log_api_requests = bool(data["log_api_requests"])
        return config


class SensitiveDataFilter(logging.Filter):
    """Filter to redact credentials from log messages."""

    def __init__(self, patterns: List[str]) -> None:
        """
        Initialize the filter with sensitive data patterns.

        Args:
            patterns: List of regex patterns to match sensitive data
        """
        super().__init__()
        self.patterns = patterns
        self.compiled_patterns = [re.compile(pattern) for pattern in patterns]

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Redact sensitive data in place.

        Returns:
            bool: Always True (we modify but don't filter out records)
        """
        if isinstance(record.msg, str):
            record.msg = self.redact(record.msg)

        if record.args:
            if isinstance(record.args, tuple):
                record.args = tuple(
                    self.redact(arg) if isinstance(arg, str) else arg for arg in record.args
                )

        return True

    def redact(self, text: str) -> str:
        """Replace every sensitive match in text."""
        for pattern in self.compiled_patterns:
            if pattern.groups >= 2:
                text = pattern.sub(r"\1\2[REDACTED]", text)
            else:
                text = pattern.sub("[REDACTED]", text)
        return text


class StructuredFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    STANDARD_ATTRS = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra_data = {}
        for key, value in record.__dict__.items():
            if key not in self.STANDARD_ATTRS and not key.startswith("_"):
                try:
                    json.dumps(value)
                    extra_data[key] = value
                except (TypeError, ValueError):
                    extra_data[key] = str(value)

        if extra_data:
            log_data["extra"] = extra_data

        return json.dumps(log_data, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Console formatter with color support."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and self._supports_color()

    def _supports_color(self) -> bool:
        """Check if the terminal supports colors."""
        return (
            hasattr(sys.stderr, "isatty")
            and sys.stderr.isatty()
            and os.environ.get("TERM") != "dumb"
        )

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            reset = self.COLORS["RESET"]
            formatted = (
                f"{color}[{timestamp}] {record.levelname:<8}{reset} - "
                f"{record.name} - {record.getMessage()}"
            )
        else:
            formatted = f"[{timestamp}] {record.levelname:<8} - {record.name} - {record.getMessage()}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


class LoggingManager:
    """
    Central logging setup for the ``mcctree`` logger tree.

    Modules log through ``logging.getLogger(__name__)``; this manager only
    owns handlers, formatters and third-party logger levels.
    """

    def __init__(self, config: Optional[LoggingConfig] = None):
        self.config = config or LoggingConfig()
        self._handlers_configured = False

    def setup_logging(self) -> None:
        """Install handlers on the ``mcctree`` root logger."""
        if self._handlers_configured:
            return

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.setLevel(getattr(logging, self.config.level.value))
        root_logger.handlers.clear()

        if self.config.enable_console_logging:
            root_logger.addHandler(self._create_console_handler())

        if self.config.enable_file_logging:
            log_dir = Path(self.config.log_directory).expanduser()
            log_dir.mkdir(parents=True, exist_ok=True)
            root_logger.addHandler(self._create_file_handler(log_dir))

        self._configure_third_party_logging()
        self._handlers_configured = True

    def _create_console_handler(self) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(getattr(logging, self.config.level.value))

        formatter: logging.Formatter
        if self.config.format_type == LogFormat.JSON:
            formatter = StructuredFormatter()
        elif self.config.format_type == LogFormat.DETAILED:
            formatter = ColoredConsoleFormatter(use_colors=self.config.console_colors)
        else:
            formatter = logging.Formatter("%(levelname)s: %(message)s")

        handler.setFormatter(formatter)
        if self.config.sensitive_data_patterns:
            handler.addFilter(SensitiveDataFilter(self.config.sensitive_data_patterns))
        return handler

    def _create_file_handler(self, log_dir: Path) -> logging.Handler:
        """Create rotating file handler."""
        handler = logging.handlers.RotatingFileHandler(
            filename=str(log_dir / self.config.log_filename),
            maxBytes=self.config.max_file_size_mb * 1024 * 1024,
            backupCount=self.config.backup_count,
            encoding="utf-8",
        )
        handler.setLevel(getattr(logging, self.config.level.value))
        handler.setFormatter(StructuredFormatter())
        if self.config.sensitive_data_patterns:
            handler.addFilter(SensitiveDataFilter(self.config.sensitive_data_patterns))
        return handler

    def _configure_third_party_logging(self) -> None:
        """Quiet the Google API client stack unless request logging is on."""
        level = logging.DEBUG if self.config.log_api_requests else logging.WARNING
        for logger_name in ["google.ads.googleads", "google.auth", "grpc", "urllib3"]:
            logging.getLogger(logger_name).setLevel(level)


def log_operation_start(logger: logging.Logger, operation: str, **context: Any) -> str:
    """
    Log the start of an operation with context.

    Returns:
        str: Operation ID for correlating the matching end record
    """
    operation_id = str(uuid.uuid4())[:8]
    logger.info(
        f"Starting operation: {operation}",
        extra={"operation_id": operation_id, "operation": operation, **context},
    )
    return operation_id


def log_operation_end(
    logger: logging.Logger,
    operation: str,
    operation_id: str,
    success: bool = True,
    duration_ms: Optional[float] = None,
    **context: Any,
) -> None:
    """Log the end of an operation started with :func:`log_operation_start`."""
    level = logging.INFO if success else logging.ERROR
    status = "completed" if success else "failed"
    extra: Dict[str, Any] = {
        "operation_id": operation_id,
        "operation": operation,
        "success": success,
        **context,
    }
    if duration_ms is not None:
        extra["duration_ms"] = duration_ms
    logger.log(level, f"Operation {status}: {operation}", extra=extra)


_global_logging_manager: Optional[LoggingManager] = None


def setup_logging(config: Optional[LoggingConfig] = None) -> LoggingManager:
    """Configure logging for the CLI process and return the manager."""
    global _global_logging_manager
    _global_logging_manager = LoggingManager(config)
    _global_logging_manager.setup_logging()
    return _global_logging_manager


def get_logging_manager() -> Optional[LoggingManager]:
    """Return the manager installed by :func:`setup_logging`, if any."""
    return _global_logging_manager

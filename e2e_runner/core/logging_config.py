"""
Logging configuration for E2E Runner.

Provides structured JSON logging with file rotation and different output formats
for development and CI environments.
"""

import logging
import logging.handlers
import json
import sys
from datetime import datetime
from typing import Optional

from .config import Config

CONTEXT_FIELDS = [
    "execution_id",
    "scenario_id",
    "action_kind",
    "agent_pid",
    "duration",
    "status",
]


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def __init__(self, correlation_id: str):
        super().__init__()
        self.correlation_id = correlation_id

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "component": record.name,
            "correlation_id": self.correlation_id,
            "message": record.getMessage(),
        }

        # Add exception information if present
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Add extra fields from record
        if hasattr(record, "metadata"):
            log_entry["metadata"] = record.metadata

        # Add context fields
        for attr in CONTEXT_FIELDS:
            if hasattr(record, attr):
                log_entry[attr] = getattr(record, attr)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def __init__(self, correlation_id: str):
        super().__init__()
        self.correlation_id = correlation_id

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable text."""
        timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S")

        # Base format
        message = f"[{timestamp}] {record.levelname:8} {record.name:28} | {record.getMessage()}"

        # Add execution ID, or the session ID outside an execution
        execution_id = getattr(record, "execution_id", None)
        if execution_id:
            message += f" (execution: {str(execution_id)[:8]})"
        else:
            message += f" (session: {self.correlation_id[:8]})"

        # Add metadata if present
        if hasattr(record, "metadata") and record.metadata:
            metadata_str = " | ".join(f"{k}={v}" for k, v in record.metadata.items())
            message += f" | {metadata_str}"

        # Add exception if present
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging(config: Config, correlation_id: str) -> logging.Logger:
    """
    Set up logging configuration based on environment and config.

    Args:
        config: Configuration object with logging settings
        correlation_id: Session identifier stamped on every record

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    # Clear any existing handlers
    root_logger.handlers.clear()

    # Set log level
    log_level = getattr(logging, config.log_level)
    root_logger.setLevel(log_level)

    # Choose formatter based on environment
    if config.log_format == "json":
        formatter = StructuredFormatter(correlation_id)
    else:
        formatter = TextFormatter(correlation_id)

    # Console handler (always present)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    # File handler for non-CI environments
    if not config.is_ci_mode:
        config.logs_dir.mkdir(parents=True, exist_ok=True)
        # Main log file with rotation
        file_handler = logging.handlers.RotatingFileHandler(
            config.get_log_file_path(),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

    # Log configuration startup
    logger = logging.getLogger("e2e_runner.logging")
    logger.info(
        "Logging configured",
        extra={
            "metadata": {
                "correlation_id": correlation_id,
                "log_level": config.log_level,
                "log_format": config.log_format,
                "ci_mode": config.is_ci_mode,
            }
        },
    )

    return root_logger


class ContextAdapter(logging.LoggerAdapter):
    """Logger adapter that merges fixed context into every record."""

    def process(self, msg, kwargs):
        if "extra" not in kwargs:
            kwargs["extra"] = {}
        kwargs["extra"].update(self.extra)
        return msg, kwargs


def get_logger(name: str, **context) -> logging.Logger:
    """
    Get a logger with optional context.

    Args:
        name: Logger name (typically module name)
        **context: Additional context to include in log records

    Returns:
        Configured logger with context
    """
    logger = logging.getLogger(name)

    # Add context as extra fields if provided
    if context:
        return ContextAdapter(logger, context)

    return logger


def log_performance(
    logger: logging.Logger, operation: str, duration: float, **metadata
):
    """
    Log performance metrics for operations.

    Args:
        logger: Logger instance
        operation: Name of the operation
        duration: Duration in seconds
        **metadata: Additional metadata to include
    """
    logger.info(
        f"Performance: {operation} completed in {duration:.2f}s",
        extra={"metadata": {"operation": operation, "duration": duration, **metadata}},
    )


def log_agent_call(
    logger: logging.Logger,
    action: str,
    duration: float,
    success: bool,
    pid: Optional[int] = None,
    **metadata,
):
    """
    Log a command/response exchange with the automation agent.

    Args:
        logger: Logger instance
        action: Action kind sent to the agent
        duration: Round-trip duration in seconds
        success: Whether the agent reported success
        pid: Agent process id
        **metadata: Additional metadata
    """
    level = logging.DEBUG if success else logging.WARNING
    status = "success" if success else "failed"

    logger.log(
        level,
        f"Agent call: {action} {status} in {duration:.3f}s",
        extra={
            "metadata": {
                "action": action,
                "agent_pid": pid,
                "duration": duration,
                "success": success,
                **metadata,
            }
        },
    )

"""
Logging utilities for the Inference Routing layer.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from ..models.config import LoggingConfig

ROOT_LOGGER_NAME = "inference_routing"


def setup_logging(config: LoggingConfig) -> None:
    """
    Set up logging configuration for the router.

    Args:
        config: Logging configuration settings
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(config.level)

    # Clear any existing handlers
    root_logger.handlers.clear()

    formatter = logging.Formatter(config.format)

    if config.enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(config.level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    # File handler with rotation
    if config.enable_file and config.file_path:
        file_path = Path(config.file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=config.file_path,
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(config.level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Prevent propagation to avoid duplicate logs
    root_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class RoutingLogger:
    """
    Audit logger for backend attempts and fallback decisions.

    Every record carries an ``event_type`` plus the backend, intent and latency
    fields in ``extra`` so operators can reconstruct why a reply came from a
    given backend.
    """

    def __init__(self, name: str = "routing"):
        self.logger = get_logger(name)

    def log_attempt(self, backend: str, intent: str, latency_ms: int,
                    model: str = "", error: Optional[str] = None,
                    agent_name: Optional[str] = None) -> None:
        """Log one adapter invocation, successful or not."""
        extra = {
            "event_type": "routing_attempt",
            "backend": backend,
            "intent": intent,
            "model": model,
            "latency_ms": latency_ms,
            "error": error,
            "agent_name": agent_name,
        }
        if error:
            self.logger.warning(
                f"Backend {backend} failed for {intent} request after {latency_ms}ms: {error}",
                extra=extra
            )
        else:
            self.logger.info(
                f"Backend {backend} answered {intent} request in {latency_ms}ms (model: {model})",
                extra=extra
            )

    def log_fallback(self, original_backend: str, fallback_backend: str, reason: str) -> None:
        """Log a fallback event."""
        self.logger.warning(
            f"Fallback triggered: {original_backend} -> {fallback_backend}",
            extra={
                "event_type": "fallback",
                "original_backend": original_backend,
                "fallback_backend": fallback_backend,
                "reason": reason
            }
        )

    def log_result(self, result_data: dict) -> None:
        """Log the terminal routing result with structured data."""
        self.logger.info(
            f"Routing complete: {result_data.get('backend')} "
            f"({result_data.get('tokens_in')}+{result_data.get('tokens_out')} tokens, "
            f"{result_data.get('credit_cost')} credits, {result_data.get('latency_ms')}ms)",
            extra={
                "event_type": "routing_result",
                "data": result_data
            }
        )

    def log_error(self, error: Exception, context: Optional[dict] = None) -> None:
        """Log an error with optional context."""
        self.logger.error(
            f"Error occurred: {str(error)}",
            extra={
                "event_type": "error",
                "error_type": type(error).__name__,
                "context": context or {}
            },
            exc_info=error
        )

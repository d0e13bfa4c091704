"""
Utility modules for the Inference Routing layer.
"""

from .logging import setup_logging, get_logger, RoutingLogger
from .config_manager import ConfigManager
from .error_handling import (
    RoutingError,
    ConfigurationError,
    BackendError,
    MalformedResponseError,
    as_backend_error,
    retry_async,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "RoutingLogger",
    "ConfigManager",
    "RoutingError",
    "ConfigurationError",
    "BackendError",
    "MalformedResponseError",
    "as_backend_error",
    "retry_async",
]

"""
Core data models for the Inference Routing layer.
"""

from .core import (
    ConversationMessage,
    RoutingRequest,
    RoutingResult,
    RoutingAttempt,
    BackendReply,
    StreamUsage,
    AvailabilityRecord,
)

from .config import (
    RouterConfig,
    LocalLLMConfig,
    SidecarConfig,
    CloudConfig,
    AvailabilityConfig,
    CreditConfig,
    LoggingConfig,
    RetryPolicy,
)

from .enums import (
    Backend,
    Intent,
    Role,
    FREE_BACKENDS,
)

__all__ = [
    # Core models
    "ConversationMessage",
    "RoutingRequest",
    "RoutingResult",
    "RoutingAttempt",
    "BackendReply",
    "StreamUsage",
    "AvailabilityRecord",
    # Configuration models
    "RouterConfig",
    "LocalLLMConfig",
    "SidecarConfig",
    "CloudConfig",
    "AvailabilityConfig",
    "CreditConfig",
    "LoggingConfig",
    "RetryPolicy",
    # Enums
    "Backend",
    "Intent",
    "Role",
    "FREE_BACKENDS",
]

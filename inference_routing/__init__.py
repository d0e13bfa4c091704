"""
Inference Routing

Decides which language-model backend answers each chat request: a free local
model first, a lightweight sidecar for automation work, metered cloud models
when the local tier is down, and an offline answer when nothing is reachable.
"""

__version__ = "0.1.0"

from .models import (
    Backend,
    Intent,
    Role,
    ConversationMessage,
    RoutingRequest,
    RoutingResult,
    StreamUsage,
    RouterConfig,
)
from .core import CentralRouter, classify, cost

__all__ = [
    "Backend",
    "Intent",
    "Role",
    "ConversationMessage",
    "RoutingRequest",
    "RoutingResult",
    "StreamUsage",
    "RouterConfig",
    "CentralRouter",
    "classify",
    "cost",
]

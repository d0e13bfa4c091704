"""
Core data models for request processing and routing.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Optional, List
from .enums import Backend, Intent, Role


@dataclass(frozen=True)
class ConversationMessage:
    """A single message of an ordered conversation."""
    role: Role
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def system(cls, content: str) -> "ConversationMessage":
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> "ConversationMessage":
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str) -> "ConversationMessage":
        return cls(Role.ASSISTANT, content)


@dataclass
class RoutingRequest:
    """A chat-style request handed to the router by its caller."""
    messages: List[ConversationMessage]
    forced_backend: Optional[Backend] = None
    user_credit_balance: Optional[int] = None
    system_prompt: Optional[str] = None
    agent_name: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class BackendReply:
    """Normalized reply produced by every backend adapter."""
    content: str
    tokens_in: int
    tokens_out: int


@dataclass
class StreamUsage:
    """Token counts accumulated over a streamed reply."""
    tokens_in: int
    tokens_out: int


@dataclass
class RoutingAttempt:
    """Audit record for one adapter invocation."""
    backend: Backend
    intent: Intent
    latency_ms: int
    success: bool
    model_identifier: str = ""
    error_message: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class RoutingResult:
    """Terminal answer returned by the router for every request."""
    reply_text: str
    backend_used: Backend
    model_identifier: str
    tokens_in: int
    tokens_out: int
    latency_ms: int
    credit_cost: int
    usd_cost_estimate: float
    intent: Intent
    attempts: List[RoutingAttempt] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def tier(self) -> str:
        return "local" if self.backend_used.is_free else "premium"

    @property
    def fallback_used(self) -> bool:
        return len(self.attempts) > 1


@dataclass
class AvailabilityRecord:
    """Cached health state of one backend."""
    last_known_up: bool
    last_probed_at: float

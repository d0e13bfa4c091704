"""
Enumerations for the Inference Routing layer.
"""

from enum import Enum


class Backend(Enum):
    """Language-model backends the router can send a conversation to."""
    LOCAL_FAST = "local_fast"
    CLOUD_STANDARD = "cloud_standard"
    CLOUD_REASONING = "cloud_reasoning"
    SIDECAR = "sidecar"
    OFFLINE = "offline"

    @property
    def is_free(self) -> bool:
        return self in FREE_BACKENDS

    @property
    def is_cloud(self) -> bool:
        return self in (Backend.CLOUD_STANDARD, Backend.CLOUD_REASONING)


FREE_BACKENDS = frozenset({Backend.LOCAL_FAST, Backend.SIDECAR, Backend.OFFLINE})


class Intent(Enum):
    """Coarse category of a user message, used to bias the first routing choice."""
    SIMPLE = "simple"
    PLANNING = "planning"
    CODING = "coding"
    AUTOMATION = "automation"
    COMPLEX = "complex"


class Role(Enum):
    """Author of a conversation message."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

"""
Configuration models for the Inference Routing layer.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional
import logging


@dataclass
class RetryPolicy:
    """Bounded retry policy applied around a single backend call."""
    max_attempts: int = 1
    backoff_base_delay: float = 0.5
    backoff_max_delay: float = 5.0
    jitter: bool = False


@dataclass
class LocalLLMConfig:
    """Configuration for the local Ollama backend."""
    model: str = "qwen2.5-coder:1.5b"
    base_url: str = "http://localhost:11434"
    timeout_seconds: float = 120.0
    max_tokens: int = 1024
    temperature: float = 0.7
    health_check: bool = False
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass
class SidecarConfig:
    """Configuration for the lightweight sidecar specialist."""
    enabled: bool = False
    base_url: str = "http://localhost:18790"
    model: str = "picoclaw"
    timeout_seconds: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass
class CloudConfig:
    """Configuration for an OpenAI-compatible cloud backend."""
    api_key: str = ""
    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "anthropic/claude-sonnet-4-5-20250929"
    timeout_seconds: float = 90.0
    max_tokens: int = 4096
    temperature: float = 0.7
    referer: str = "http://localhost:5173"
    app_title: str = "GeekSpace AI OS"
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.base_url)


def _reasoning_config() -> CloudConfig:
    return CloudConfig(
        model="kimi-k2-thinking",
        timeout_seconds=120.0,
        max_tokens=8192,
        retry=RetryPolicy(max_attempts=2, backoff_base_delay=0.5),
    )


@dataclass
class AvailabilityConfig:
    """Health-check cache settings."""
    ttl_seconds: float = 30.0
    probe_timeout_seconds: float = 3.0


@dataclass
class CreditConfig:
    """Credit rates (per 1000 combined tokens) and real-currency estimates."""
    rates: Dict[str, int] = field(default_factory=lambda: {
        "cloud_standard": 5,
        "cloud_reasoning": 10,
    })
    min_premium_credits: int = 10
    usd_per_token: Dict[str, Dict[str, float]] = field(default_factory=lambda: {
        "cloud_standard": {"in": 0.000003, "out": 0.000015},
        "cloud_reasoning": {"in": 0.000002, "out": 0.00001},
    })


@dataclass
class LoggingConfig:
    """Configuration for system logging."""
    level: int = logging.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = "inference_routing.log"
    max_file_size_mb: int = 100
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = True


DEFAULT_OFFLINE_MESSAGE = (
    "I can't reach my AI backends right now. Please try again shortly. "
    "In the meantime, terminal commands like `gs reminders list` or `gs credits` still work."
)


@dataclass
class RouterConfig:
    """Main router configuration."""
    local_llm_config: LocalLLMConfig = field(default_factory=LocalLLMConfig)
    sidecar_config: SidecarConfig = field(default_factory=SidecarConfig)
    cloud_standard_config: CloudConfig = field(default_factory=CloudConfig)
    cloud_reasoning_config: CloudConfig = field(default_factory=_reasoning_config)
    availability_config: AvailabilityConfig = field(default_factory=AvailabilityConfig)
    credit_config: CreditConfig = field(default_factory=CreditConfig)
    logging_config: LoggingConfig = field(default_factory=LoggingConfig)
    offline_message: str = DEFAULT_OFFLINE_MESSAGE
    max_log_entries: int = 1000

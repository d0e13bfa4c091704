"""
Configuration management for the Inference Routing layer.
"""

import json
import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Optional, Dict, Any, Mapping

from ..models.config import (
    RouterConfig, LocalLLMConfig, SidecarConfig, CloudConfig, AvailabilityConfig,
    CreditConfig, LoggingConfig, RetryPolicy, DEFAULT_OFFLINE_MESSAGE,
)
from .error_handling import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}
# API keys come from the environment and are never written to disk
_SECRET_SECTIONS = ("cloud_standard_config", "cloud_reasoning_config")


class ConfigManager:
    """
    Manages router configuration loading, environment overrides, validation and updates.
    """

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        self.config_path = config_path or "routing_config.json"
        self.environ = os.environ if environ is None else environ
        self._config: Optional[RouterConfig] = None
        self.logger = logging.getLogger(__name__)

    def load_config(self) -> RouterConfig:
        """
        Load configuration from file (or defaults) and apply environment overrides.

        Returns:
            RouterConfig instance

        Raises:
            ConfigurationError: If configuration loading or validation fails
        """
        try:
            if Path(self.config_path).exists():
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    config_data = json.load(f)
                config = self._dict_to_config(config_data)
                self.logger.info(f"Configuration loaded from {self.config_path}")
            else:
                config = RouterConfig()
                self.logger.info("No configuration file found, using defaults")
        except (OSError, ValueError, TypeError) as e:
            raise ConfigurationError(f"Failed to load configuration: {str(e)}")

        self._apply_env_overrides(config)
        self._validate_config(config)
        self._config = config
        return config

    def save_config(self, config: Optional[RouterConfig] = None) -> None:
        """
        Save configuration to file. Cloud API keys are written blank.

        Args:
            config: Configuration to save (uses current config if None)

        Raises:
            ConfigurationError: If configuration saving fails
        """
        config_to_save = config or self._config
        if not config_to_save:
            raise ConfigurationError("No configuration to save")

        try:
            Path(self.config_path).parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self._persistable_dict(config_to_save), f, indent=2, default=str)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration: {str(e)}")

        self.logger.info(f"Configuration saved to {self.config_path}")

    def get_config(self) -> RouterConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self._config = self.load_config()
        return self._config

    def update_config(self, updates: Dict[str, Any]) -> RouterConfig:
        """
        Update configuration with new values and persist it.

        Args:
            updates: Nested dictionary of configuration updates

        Returns:
            Updated RouterConfig instance
        """
        config_dict = self._config_to_dict(self.get_config())
        self._deep_update(config_dict, updates)

        try:
            updated_config = self._dict_to_config(config_dict)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration update: {str(e)}")
        self._validate_config(updated_config)

        self._config = updated_config
        self.save_config()
        return updated_config

    def _apply_env_overrides(self, config: RouterConfig) -> None:
        """Apply the deployment's environment variables on top of file/default values."""
        local = config.local_llm_config
        local.base_url = self._env_str("OLLAMA_BASE_URL", local.base_url)
        local.model = self._env_str("OLLAMA_MODEL", local.model)
        local.timeout_seconds = self._env_ms("OLLAMA_TIMEOUT_MS", local.timeout_seconds)
        local.max_tokens = self._env_int("OLLAMA_MAX_TOKENS", local.max_tokens)

        standard = config.cloud_standard_config
        reasoning = config.cloud_reasoning_config
        api_key = self._env_str("OPENROUTER_API_KEY", "")
        base_url = self._env_str("OPENROUTER_BASE_URL", "")
        public_url = self._env_str("PUBLIC_URL", "")
        # The reasoning model is served through the same account as the standard one
        for cloud in (standard, reasoning):
            if api_key:
                cloud.api_key = api_key
            if base_url:
                cloud.base_url = base_url
            if public_url:
                cloud.referer = public_url
        standard.model = self._env_str("OPENROUTER_MODEL", standard.model)
        standard.timeout_seconds = self._env_ms("OPENROUTER_TIMEOUT_MS", standard.timeout_seconds)
        standard.max_tokens = self._env_int("OPENROUTER_MAX_TOKENS", standard.max_tokens)
        reasoning.model = self._env_str("MOONSHOT_REASONING_MODEL", reasoning.model)
        reasoning.timeout_seconds = self._env_ms("MOONSHOT_TIMEOUT_MS", reasoning.timeout_seconds)
        reasoning.max_tokens = self._env_int("MOONSHOT_MAX_TOKENS", reasoning.max_tokens)

        sidecar = config.sidecar_config
        if "PICOCLAW_ENABLED" in self.environ:
            sidecar.enabled = self.environ["PICOCLAW_ENABLED"].strip().lower() in _TRUE_VALUES
        sidecar.base_url = self._env_str("PICOCLAW_URL", sidecar.base_url)
        sidecar.timeout_seconds = self._env_ms("PICOCLAW_TIMEOUT_MS", sidecar.timeout_seconds)

        level_name = self._env_str("LOG_LEVEL", "")
        if level_name:
            level = logging.getLevelName(level_name.upper())
            if not isinstance(level, int):
                raise ConfigurationError(f"Unknown log level: {level_name}", config_key="LOG_LEVEL")
            config.logging_config.level = level

    def _env_str(self, key: str, default: str) -> str:
        return self.environ.get(key) or default

    def _env_int(self, key: str, default: int) -> int:
        value = self.environ.get(key)
        if not value:
            return default
        try:
            return int(value)
        except ValueError:
            raise ConfigurationError(f"{key} must be an integer, got {value!r}", config_key=key)

    def _env_ms(self, key: str, default_seconds: float) -> float:
        value = self.environ.get(key)
        if not value:
            return default_seconds
        return self._env_int(key, 0) / 1000.0

    def _validate_config(self, config: RouterConfig) -> None:
        """
        Validate configuration settings.

        Raises:
            ConfigurationError: If validation fails
        """
        timeouts = {
            "local_llm_config.timeout_seconds": config.local_llm_config.timeout_seconds,
            "sidecar_config.timeout_seconds": config.sidecar_config.timeout_seconds,
            "cloud_standard_config.timeout_seconds": config.cloud_standard_config.timeout_seconds,
            "cloud_reasoning_config.timeout_seconds": config.cloud_reasoning_config.timeout_seconds,
            "availability_config.probe_timeout_seconds": config.availability_config.probe_timeout_seconds,
        }
        for key, value in timeouts.items():
            if value <= 0:
                raise ConfigurationError(f"{key} must be positive", config_key=key)

        if config.availability_config.ttl_seconds <= 0:
            raise ConfigurationError("Availability TTL must be positive", config_key="availability_config.ttl_seconds")

        for name in ("cloud_standard", "cloud_reasoning"):
            if config.credit_config.rates.get(name, 0) <= 0:
                raise ConfigurationError(f"Credit rate for {name} must be positive", config_key="credit_config.rates")

        if config.credit_config.min_premium_credits <= 0:
            raise ConfigurationError("Minimum premium credits must be positive",
                                     config_key="credit_config.min_premium_credits")

        for key, cloud in (("cloud_standard_config", config.cloud_standard_config),
                           ("cloud_reasoning_config", config.cloud_reasoning_config)):
            if cloud.max_tokens <= 0:
                raise ConfigurationError(f"{key}.max_tokens must be positive", config_key=key)
            if cloud.retry.max_attempts < 1:
                raise ConfigurationError(f"{key}.retry.max_attempts must be at least 1", config_key=key)

        if not config.cloud_standard_config.api_key:
            self.logger.warning("No cloud API key configured; cloud backends will be treated as down")

    def _dict_to_config(self, config_dict: Dict[str, Any]) -> RouterConfig:
        """Convert dictionary to RouterConfig object."""
        defaults = RouterConfig()
        return RouterConfig(
            local_llm_config=self._with_retry(LocalLLMConfig, config_dict.get('local_llm_config', {})),
            sidecar_config=self._with_retry(SidecarConfig, config_dict.get('sidecar_config', {})),
            cloud_standard_config=self._with_retry(
                CloudConfig, config_dict.get('cloud_standard_config', {}), asdict(defaults.cloud_standard_config)),
            cloud_reasoning_config=self._with_retry(
                CloudConfig, config_dict.get('cloud_reasoning_config', {}), asdict(defaults.cloud_reasoning_config)),
            availability_config=AvailabilityConfig(**config_dict.get('availability_config', {})),
            credit_config=CreditConfig(**config_dict.get('credit_config', {})),
            logging_config=LoggingConfig(**config_dict.get('logging_config', {})),
            offline_message=config_dict.get('offline_message', DEFAULT_OFFLINE_MESSAGE),
            max_log_entries=config_dict.get('max_log_entries', defaults.max_log_entries),
        )

    @staticmethod
    def _with_retry(cls, values: Dict[str, Any], base: Optional[Dict[str, Any]] = None):
        merged = dict(base or {})
        merged.update(values)
        retry = merged.pop('retry', None)
        if isinstance(retry, dict):
            merged['retry'] = RetryPolicy(**retry)
        elif isinstance(retry, RetryPolicy):
            merged['retry'] = retry
        return cls(**merged)

    def _persistable_dict(self, config: RouterConfig) -> Dict[str, Any]:
        """Dictionary form of ``config`` with API keys blanked."""
        config_dict = self._config_to_dict(config)
        for section in _SECRET_SECTIONS:
            config_dict[section]['api_key'] = ""
        return config_dict

    def _config_to_dict(self, config: RouterConfig) -> Dict[str, Any]:
        """Convert RouterConfig object to dictionary."""
        return asdict(config)

    def _deep_update(self, base_dict: Dict[str, Any], updates: Dict[str, Any]) -> None:
        """Recursively update nested dictionary."""
        for key, value in updates.items():
            if key in base_dict and isinstance(base_dict[key], dict) and isinstance(value, dict):
                self._deep_update(base_dict[key], value)
            else:
                base_dict[key] = value

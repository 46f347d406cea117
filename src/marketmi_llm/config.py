"""
Orchestrator Configuration
==========================

Retry, persistence and provider-order settings for the fallback router.

Settings come from three places, later ones winning:
    1. Dataclass defaults (the values the router was tuned with)
    2. A YAML file (``OrchestratorConfig.from_yaml``)
    3. Environment variables (``OrchestratorConfig.from_env``)

Example YAML:
    max_retries_per_provider: 2
    max_total_retries: 5
    provider_priority: [groq, openrouter, huggingface]
    quota_limits:
      openrouter: 150
    state_path: ~/.marketmi/llm_state.json

Usage:
    config = OrchestratorConfig.from_env()
    router = FallbackRouter(config=config)
"""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)


CONFIG_ENV_VAR = "MARKETMI_LLM_CONFIG"
STATE_ENV_VAR = "MARKETMI_LLM_STATE"

DEFAULT_STATE_PATH = Path.home() / ".marketmi" / "llm_state.json"


class ConfigError(ValueError):
    """Invalid configuration file or value."""


@dataclass
class OrchestratorConfig:
    """
    Configuration for FallbackRouter.
    
    All delays are in milliseconds to match the cooldown table.
    """
    
    # === Retry Settings ===
    max_retries_per_provider: int = 2
    """Attempts on one provider before advancing to the next."""
    
    max_total_retries: int = 5
    """Attempts across all providers within one call (rescue excluded)."""
    
    base_delay_ms: float = 500
    max_delay_ms: float = 5000
    backoff_multiplier: float = 1.5
    jitter_ms: float = 200
    
    final_retry_delay_ms: float = 2000
    """Pause before the single last-chance attempt."""
    
    caller_retry_delay_ms: float = 3000
    """Pause used by generate() before re-running a failed call."""
    
    request_timeout_seconds: Optional[float] = None
    """Total timeout per HTTP attempt. None leaves the transport default."""
    
    # === Provider Settings ===
    provider_priority: Optional[List[str]] = None
    """Fallback order. None uses the built-in order."""
    
    quota_limits: Dict[str, int] = field(default_factory=dict)
    """Per-provider daily request ceilings overriding the built-in ones."""
    
    quota_warning_threshold: float = 90.0
    """Percent of a daily quota at which get_quota_warning() fires."""
    
    # === Persistence ===
    state_path: Optional[Path] = None
    """JSON file holding quota and health records. None uses the default."""
    
    def __post_init__(self):
        if self.state_path is not None:
            self.state_path = Path(self.state_path).expanduser()
        if self.max_retries_per_provider < 1:
            raise ConfigError("max_retries_per_provider must be at least 1")
        if self.max_total_retries < 1:
            raise ConfigError("max_total_retries must be at least 1")
        if self.base_delay_ms > self.max_delay_ms:
            raise ConfigError("base_delay_ms cannot exceed max_delay_ms")
    
    @property
    def resolved_state_path(self) -> Path:
        return self.state_path or DEFAULT_STATE_PATH
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrchestratorConfig":
        """Build a config from a plain mapping, ignoring unknown keys."""
        known = cls.__dataclass_fields__.keys()
        unknown = set(data) - set(known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
        
        config_data = {k: v for k, v in data.items() if k in known}
        
        if "quota_limits" in config_data:
            limits = config_data["quota_limits"] or {}
            if not isinstance(limits, dict):
                raise ConfigError("quota_limits must be a mapping of provider -> int")
            config_data["quota_limits"] = {str(k): int(v) for k, v in limits.items()}
        
        if config_data.get("provider_priority") is not None:
            priority = config_data["provider_priority"]
            if not isinstance(priority, list):
                raise ConfigError("provider_priority must be a list")
            config_data["provider_priority"] = [str(p) for p in priority]
        
        return cls(**config_data)
    
    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "OrchestratorConfig":
        """
        Load configuration from a YAML file.
        
        Raises:
            FileNotFoundError: If the file doesn't exist
            ConfigError: If the YAML is not a mapping
        """
        path = Path(path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        
        with open(path) as f:
            data = yaml.safe_load(f)
        
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Invalid config format: expected dict, got {type(data).__name__}")
        
        return cls.from_dict(data)
    
    @classmethod
    def from_env(cls) -> "OrchestratorConfig":
        """Load from $MARKETMI_LLM_CONFIG (if set), then apply $MARKETMI_LLM_STATE."""
        config_path = os.environ.get(CONFIG_ENV_VAR)
        config = cls.from_yaml(config_path) if config_path else cls()
        
        state_path = os.environ.get(STATE_ENV_VAR)
        if state_path:
            config.state_path = Path(state_path).expanduser()
        
        return config
    
    def to_yaml(self, path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        
        data = {
            "max_retries_per_provider": self.max_retries_per_provider,
            "max_total_retries": self.max_total_retries,
            "base_delay_ms": self.base_delay_ms,
            "max_delay_ms": self.max_delay_ms,
            "backoff_multiplier": self.backoff_multiplier,
            "jitter_ms": self.jitter_ms,
            "final_retry_delay_ms": self.final_retry_delay_ms,
            "caller_retry_delay_ms": self.caller_retry_delay_ms,
            "quota_warning_threshold": self.quota_warning_threshold,
        }
        
        # Only include optional fields if set
        if self.request_timeout_seconds is not None:
            data["request_timeout_seconds"] = self.request_timeout_seconds
        if self.provider_priority is not None:
            data["provider_priority"] = list(self.provider_priority)
        if self.quota_limits:
            data["quota_limits"] = dict(self.quota_limits)
        if self.state_path is not None:
            data["state_path"] = str(self.state_path)
        
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
        
        logger.info(f"Saved orchestrator config to {path}")

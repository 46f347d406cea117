"""
Provider Registry
=================

Static description of every backend the router can fall back to.

Provider Priority (waterfall on failure):
    1. Groq         - Fastest, 14,400 req/day free
    2. OpenRouter   - Gateway to free community models
    3. HuggingFace  - Inference API for open models (no system role)

OpenAI is registered for completeness but has no free quota, so it never
becomes eligible unless a quota limit is configured for it.
"""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional, Union

from .base import Tier
from ..config import OrchestratorConfig

logger = logging.getLogger(__name__)


class ProviderId(Enum):
    """Fixed set of provider identifiers."""
    GROQ = "groq"
    OPENROUTER = "openrouter"
    HUGGINGFACE = "huggingface"
    OPENAI = "openai"


class ApiStyle(Enum):
    """Wire format family an adapter speaks."""
    CHAT_COMPLETIONS = "chat_completions"
    TEXT_GENERATION = "text_generation"


@dataclass(frozen=True)
class ProviderSpec:
    """Immutable registry entry for one provider."""
    id: ProviderId
    name: str
    endpoint: str
    fast_model: str
    reasoning_model: str
    max_tokens: int
    supports_system_prompt: bool
    daily_quota: int
    api_key_env: str
    api_style: ApiStyle = ApiStyle.CHAT_COMPLETIONS
    
    def model_for(self, tier: Tier) -> str:
        """Model identifier for a quality tier."""
        return self.reasoning_model if tier == Tier.REASONING else self.fast_model
    
    def endpoint_for(self, model: str) -> str:
        """Endpoint URL, with ``{model}`` filled in for per-model endpoints."""
        return self.endpoint.format(model=model)


PROVIDER_SPECS: Dict[ProviderId, ProviderSpec] = {
    ProviderId.GROQ: ProviderSpec(
        id=ProviderId.GROQ,
        name="Groq",
        endpoint="https://api.groq.com/openai/v1/chat/completions",
        fast_model="llama-3.3-70b-versatile",
        reasoning_model="llama-3.3-70b-versatile",
        max_tokens=4096,
        supports_system_prompt=True,
        daily_quota=14_400,
        api_key_env="GROQ_API_KEY",
    ),
    ProviderId.OPENROUTER: ProviderSpec(
        id=ProviderId.OPENROUTER,
        name="OpenRouter",
        endpoint="https://openrouter.ai/api/v1/chat/completions",
        fast_model="meta-llama/llama-3.2-3b-instruct:free",
        reasoning_model="deepseek/deepseek-r1-distill-llama-70b:free",
        max_tokens=4096,
        supports_system_prompt=True,
        daily_quota=200,  # free tier varies, conservative estimate
        api_key_env="OPENROUTER_API_KEY",
    ),
    ProviderId.HUGGINGFACE: ProviderSpec(
        id=ProviderId.HUGGINGFACE,
        name="HuggingFace",
        endpoint="https://api-inference.huggingface.co/models/{model}",
        fast_model="HuggingFaceH4/zephyr-7b-beta",
        reasoning_model="mistralai/Mixtral-8x7B-Instruct-v0.1",
        max_tokens=2048,
        supports_system_prompt=False,
        daily_quota=1_000,
        api_key_env="HUGGINGFACE_API_KEY",
        api_style=ApiStyle.TEXT_GENERATION,
    ),
    ProviderId.OPENAI: ProviderSpec(
        id=ProviderId.OPENAI,
        name="OpenAI",
        endpoint="https://api.openai.com/v1/chat/completions",
        fast_model="gpt-4o-mini",
        reasoning_model="gpt-4o",
        max_tokens=4096,
        supports_system_prompt=True,
        daily_quota=0,  # paid, excluded from the free chain
        api_key_env="OPENAI_API_KEY",
    ),
}

DEFAULT_PRIORITY: List[ProviderId] = [
    ProviderId.GROQ,
    ProviderId.OPENROUTER,
    ProviderId.HUGGINGFACE,
]

MIN_API_KEY_LENGTH = 10
PLACEHOLDER_MARKER = "your-"


def as_provider_id(provider: Union[str, ProviderId]) -> ProviderId:
    """Coerce a provider name to ProviderId."""
    if isinstance(provider, ProviderId):
        return provider
    try:
        return ProviderId(str(provider).lower())
    except ValueError:
        raise ValueError(f"Unknown provider: {provider}") from None


def is_usable_api_key(key: Optional[str]) -> bool:
    """Non-empty, longer than the minimum, and not a template placeholder."""
    return (
        isinstance(key, str)
        and len(key) > MIN_API_KEY_LENGTH
        and PLACEHOLDER_MARKER not in key
    )


def mask_key(key: Optional[str]) -> str:
    if not key:
        return "NOT SET"
    return f"{key[:8]}..."


def read_api_keys(environ: Optional[Mapping[str, str]] = None) -> Dict[ProviderId, str]:
    """
    Read one credential per provider from the environment.
    
    Both ``GROQ_API_KEY`` and the bundler-style ``VITE_GROQ_API_KEY`` are
    accepted; the unprefixed name wins.
    """
    environ = os.environ if environ is None else environ
    keys = {}
    for provider_id, spec in PROVIDER_SPECS.items():
        keys[provider_id] = (
            environ.get(spec.api_key_env)
            or environ.get(f"VITE_{spec.api_key_env}")
            or ""
        )
    return keys


class ProviderRegistry:
    """
    Provider specs, credentials, priority order and daily quota ceilings.
    
    Built once at startup and never mutated afterwards. Credentials are read
    when the registry is created; changing the environment later has no effect.
    
    Example:
        registry = ProviderRegistry()
        for provider in registry.configured_providers():
            print(provider.value, registry.get(provider).model_for(Tier.FAST))
    """
    
    def __init__(
        self,
        api_keys: Optional[Mapping[Union[str, ProviderId], str]] = None,
        config: Optional[OrchestratorConfig] = None,
        specs: Optional[Mapping[ProviderId, ProviderSpec]] = None,
    ):
        config = config or OrchestratorConfig()
        self._specs: Dict[ProviderId, ProviderSpec] = dict(specs or PROVIDER_SPECS)
        
        if api_keys is None:
            self._api_keys = read_api_keys()
        else:
            self._api_keys = {as_provider_id(p): k for p, k in api_keys.items()}
        
        if config.provider_priority is not None:
            self._priority = [as_provider_id(p) for p in config.provider_priority]
        else:
            self._priority = list(DEFAULT_PRIORITY)
        
        unknown = [p for p in self._priority if p not in self._specs]
        if unknown:
            raise ValueError(f"No spec registered for: {', '.join(p.value for p in unknown)}")
        
        self._quota_limits: Dict[ProviderId, int] = {
            pid: spec.daily_quota for pid, spec in self._specs.items()
        }
        for provider, limit in config.quota_limits.items():
            self._quota_limits[as_provider_id(provider)] = int(limit)
    
    @property
    def priority(self) -> List[ProviderId]:
        """Fallback order (copy)."""
        return list(self._priority)
    
    @property
    def all_providers(self) -> List[ProviderId]:
        return list(self._specs)
    
    def get(self, provider: Union[str, ProviderId]) -> ProviderSpec:
        return self._specs[as_provider_id(provider)]
    
    def api_key(self, provider: Union[str, ProviderId]) -> str:
        return self._api_keys.get(as_provider_id(provider), "")
    
    def has_valid_api_key(self, provider: Union[str, ProviderId]) -> bool:
        return is_usable_api_key(self.api_key(provider))
    
    def quota_limit(self, provider: Union[str, ProviderId]) -> int:
        return self._quota_limits.get(as_provider_id(provider), 0)
    
    def configured_providers(self) -> List[ProviderId]:
        """Providers in priority order that have a usable credential."""
        return [p for p in self._priority if self.has_valid_api_key(p)]
    
    def log_startup_report(self) -> None:
        """Log which providers are usable, masking credentials."""
        configured = self.configured_providers()
        if configured:
            logger.info(
                f"LLM router initialized with providers: "
                f"{', '.join(p.value for p in configured)}"
            )
            return
        
        logger.warning("No LLM providers configured!")
        logger.warning(
            "Required env vars: "
            + ", ".join(self._specs[p].api_key_env for p in self._priority)
        )
        detected = {p.value: mask_key(self.api_key(p)) for p in self._priority}
        logger.warning(f"API keys detected: {detected}")
    
    def __repr__(self) -> str:
        order = ", ".join(p.value for p in self._priority)
        return f"{self.__class__.__name__}(priority=[{order}])"

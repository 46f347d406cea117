"""
Market MI LLM Router
====================

Multi-provider LLM calls with automatic fallback, health tracking,
daily quota management and retry/backoff.

Usage:
    from marketmi_llm import call_llm, parse_json_from_llm
    
    response = await call_llm("Suggest 5 blog titles as a JSON array", tier="fast")
    titles = parse_json_from_llm(response.text)
"""

__version__ = "1.0.0"

from .config import ConfigError, OrchestratorConfig
from .json_extract import parse_json_from_llm
from .providers import (
    AllProvidersFailedError,
    FallbackRouter,
    LLMOptions,
    LLMResponse,
    ProviderId,
    Tier,
    call_llm,
    generate,
    get_available_providers,
    get_provider_health_status,
    get_quota_status,
    get_quota_warning,
    has_free_llm_configured,
    reset_provider_health,
)


__all__ = [
    "__version__",
    "ConfigError",
    "OrchestratorConfig",
    "parse_json_from_llm",
    "AllProvidersFailedError",
    "FallbackRouter",
    "LLMOptions",
    "LLMResponse",
    "ProviderId",
    "Tier",
    "call_llm",
    "generate",
    "get_available_providers",
    "get_provider_health_status",
    "get_quota_status",
    "get_quota_warning",
    "has_free_llm_configured",
    "reset_provider_health",
]

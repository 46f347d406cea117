"""
Fallback Provider Layer
=======================

One entry point for asking an LLM, routed across free-tier providers with
automatic, silent fallback.

Architecture:
    providers/
    ├── base.py       # Request/response types, AttemptLog, adapter protocol
    ├── registry.py   # Provider specs, credentials, priority, quotas
    ├── errors.py     # Error classifier, retry delay, exceptions
    ├── store.py      # Persistent key-value state (JSON file / memory)
    ├── quota.py      # Daily request counters
    ├── health.py     # Failure counts, success rate, cooldowns
    ├── adapters.py   # Chat-completions and text-generation wire formats
    └── router.py     # FallbackRouter: retry / fallback / last-chance loop

Provider Priority (waterfall on failure):
    1. Groq
    2. OpenRouter
    3. HuggingFace

Usage:
    from marketmi_llm.providers import call_llm, LLMOptions
    
    response = await call_llm("Draft a welcome email", LLMOptions(tier="fast"))
    print(response.provider, response.text)
"""

from .base import (
    AttemptLog,
    AttemptRecord,
    CallAttemptResult,
    LLMOptions,
    LLMResponse,
    Message,
    ProviderAdapter,
    Role,
    Tier,
)
from .registry import (
    DEFAULT_PRIORITY,
    PROVIDER_SPECS,
    ApiStyle,
    ProviderId,
    ProviderRegistry,
    ProviderSpec,
)
from .errors import (
    ERROR_PATTERNS,
    AllProvidersFailedError,
    ErrorKind,
    ErrorPolicy,
    ProviderAPIError,
    ProviderError,
    calculate_retry_delay,
    classify_error,
    get_policy,
)
from .store import (
    HEALTH_STORAGE_KEY,
    QUOTA_STORAGE_KEY,
    JsonFileStore,
    MemoryStore,
    StateStore,
)
from .quota import QuotaStatus, QuotaTracker
from .health import HealthTracker, ProviderHealth
from .adapters import ChatCompletionsAdapter, TextGenerationAdapter, create_adapter
from .router import (
    FallbackRouter,
    call_llm,
    generate,
    get_available_providers,
    get_provider_health_status,
    get_quota_status,
    get_quota_warning,
    get_router,
    has_free_llm_configured,
    reset_provider_health,
    set_router,
)


__all__ = [
    # Core types
    "AttemptLog",
    "AttemptRecord",
    "CallAttemptResult",
    "LLMOptions",
    "LLMResponse",
    "Message",
    "ProviderAdapter",
    "Role",
    "Tier",
    
    # Registry
    "DEFAULT_PRIORITY",
    "PROVIDER_SPECS",
    "ApiStyle",
    "ProviderId",
    "ProviderRegistry",
    "ProviderSpec",
    
    # Errors
    "ERROR_PATTERNS",
    "AllProvidersFailedError",
    "ErrorKind",
    "ErrorPolicy",
    "ProviderAPIError",
    "ProviderError",
    "calculate_retry_delay",
    "classify_error",
    "get_policy",
    
    # State
    "HEALTH_STORAGE_KEY",
    "QUOTA_STORAGE_KEY",
    "JsonFileStore",
    "MemoryStore",
    "StateStore",
    "QuotaStatus",
    "QuotaTracker",
    "HealthTracker",
    "ProviderHealth",
    
    # Adapters
    "ChatCompletionsAdapter",
    "TextGenerationAdapter",
    "create_adapter",
    
    # Router
    "FallbackRouter",
    "call_llm",
    "generate",
    "get_available_providers",
    "get_provider_health_status",
    "get_quota_status",
    "get_quota_warning",
    "get_router",
    "has_free_llm_configured",
    "reset_provider_health",
    "set_router",
]

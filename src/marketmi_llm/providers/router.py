"""
Fallback Router
===============

Routes one logical LLM request across providers with retry, silent
fallback and a single last-chance attempt.

Per call:
    1. Eligible providers are recomputed (credential, daily quota, cooldown).
    2. Each provider gets up to ``max_retries_per_provider`` attempts, with
       exponential backoff between attempts the classifier deems retryable.
       A non-retryable failure advances to the next provider at once.
       At most ``max_total_retries`` attempts are made across providers.
    3. If nothing succeeded, wait ``final_retry_delay_ms`` and try the
       highest-priority eligible provider one more time.
    4. Only then raise AllProvidersFailedError.

Intermediate failures are logged and recorded in an AttemptLog, never raised.
"""

from __future__ import annotations

import asyncio
import time
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import aiohttp

from .adapters import create_adapter
from .base import AttemptLog, CallAttemptResult, LLMOptions, LLMResponse, ProviderAdapter
from .errors import AllProvidersFailedError, ProviderAPIError, apply_verdict, calculate_retry_delay
from .health import HealthTracker, ProviderHealth
from .quota import QuotaStatus, QuotaTracker
from .registry import ProviderId, ProviderRegistry, as_provider_id
from .store import JsonFileStore, StateStore
from ..config import OrchestratorConfig

logger = logging.getLogger(__name__)


class FallbackRouter:
    """
    Routes requests to the first healthy provider with automatic fallback.
    
    Features:
        - Fixed priority order, filtered by credential, quota and cooldown
        - Per-provider retries with exponential backoff and jitter
        - Error classification driving retry / fallback / cooldown
        - Persisted daily quota and health shared across processes
        - One last-chance attempt before surfacing a failure
    
    Example:
        async with FallbackRouter() as router:
            response = await router.call_llm(
                "Write a tagline for a bakery",
                LLMOptions(tier="fast", system_prompt="You are a copywriter."),
            )
            print(response.provider, response.text)
    """
    
    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        store: Optional[StateStore] = None,
        config: Optional[OrchestratorConfig] = None,
        adapters: Optional[Dict[Union[str, ProviderId], ProviderAdapter]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the router.
        
        Args:
            registry: Provider registry (built from config and env if not given)
            store: Persistent state store (JSON file at config.state_path if not given)
            config: Retry and persistence settings
            adapters: Pre-built adapters by provider; others are created on demand
            sleep: Coroutine used for backoff pauses, in seconds
        """
        self.config = config or OrchestratorConfig()
        self.registry = registry or ProviderRegistry(config=self.config)
        self.store = store if store is not None else JsonFileStore(self.config.resolved_state_path)
        self.quota = QuotaTracker(
            self.store, self.registry, warning_threshold=self.config.quota_warning_threshold
        )
        self.health = HealthTracker(self.store, self.registry)
        
        self._adapters: Dict[str, ProviderAdapter] = {
            as_provider_id(p).value: a for p, a in (adapters or {}).items()
        }
        self._session: Optional[aiohttp.ClientSession] = None
        self._session_loop: Optional[asyncio.AbstractEventLoop] = None
        self._sleep = sleep
        
        self.last_attempts = AttemptLog()
    
    # -------------------------------------------------------------------------
    # Session & adapters
    # -------------------------------------------------------------------------
    
    def _get_session(self) -> aiohttp.ClientSession:
        """
        Shared session for the running event loop.
        
        A session is bound to the loop it was created on, so a router reused
        across asyncio.run() calls gets a fresh one per loop. The stale
        session cannot be closed once its loop is gone and is dropped.
        """
        loop = asyncio.get_running_loop()
        if self._session is not None and not self._session.closed and self._session_loop is not loop:
            logger.debug("Event loop changed, replacing HTTP session")
            self._session = None
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._session_loop = loop
        return self._session
    
    async def close(self) -> None:
        """Close the shared HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        self._session_loop = None
    
    async def __aenter__(self) -> "FallbackRouter":
        return self
    
    async def __aexit__(self, *exc_info) -> None:
        await self.close()
    
    def _get_adapter(self, provider: ProviderId) -> ProviderAdapter:
        """Get or create the adapter for a provider."""
        if provider.value not in self._adapters:
            self._adapters[provider.value] = create_adapter(
                self.registry.get(provider),
                self.registry.api_key(provider),
                self._get_session,
                timeout_seconds=self.config.request_timeout_seconds,
            )
        return self._adapters[provider.value]
    
    # -------------------------------------------------------------------------
    # Eligibility
    # -------------------------------------------------------------------------
    
    def is_provider_available(self, provider: Union[str, ProviderId]) -> bool:
        """Credential present, quota left today, and not cooling down."""
        provider = as_provider_id(provider)
        if not self.registry.has_valid_api_key(provider):
            return False
        if not self.quota.has_remaining(provider):
            return False
        if self.health.is_in_cooldown(provider):
            return False
        return True
    
    def eligible_providers(self) -> List[ProviderId]:
        """Priority-ordered providers usable right now. Never cached."""
        return [p for p in self.registry.priority if self.is_provider_available(p)]
    
    # -------------------------------------------------------------------------
    # Attempts
    # -------------------------------------------------------------------------
    
    async def _attempt(
        self,
        provider: ProviderId,
        prompt: str,
        options: LLMOptions,
    ) -> CallAttemptResult:
        """One adapter call. Never raises for provider or transport failures."""
        try:
            result = await self._get_adapter(provider).call(prompt, options)
        except Exception as e:
            result = CallAttemptResult.failed(e)
        
        if result.success and not result.text:
            result = CallAttemptResult.failed(
                ProviderAPIError(
                    f"{self.registry.get(provider).name} returned an empty response",
                    provider=provider.value,
                ),
                status_code=result.status_code,
            )
        
        if not result.success:
            apply_verdict(result)
        return result
    
    def _record_success(self, provider: ProviderId) -> None:
        self.health.record_success(provider)
        self.quota.increment(provider)
    
    def _record_failure(
        self,
        provider: ProviderId,
        result: CallAttemptResult,
        log: AttemptLog,
    ) -> None:
        entry = log.record(provider.value, result)
        self.health.record_failure(provider, entry.error, result.cooldown_ms)
        logger.warning(
            f"{provider.value} failed ({result.status_code or 'network'}): {entry.error[:100]}"
        )
    
    # -------------------------------------------------------------------------
    # Main entry point
    # -------------------------------------------------------------------------
    
    async def call_llm(
        self,
        prompt: str,
        options: Optional[LLMOptions] = None,
        **kwargs
    ) -> LLMResponse:
        """
        Ask the model, falling back across providers as needed.
        
        Args:
            prompt: User prompt
            options: LLMOptions; alternatively pass its fields as keyword
                arguments (tier, system_prompt, temperature, max_tokens)
            
        Returns:
            LLMResponse with the text and the provider that produced it
            
        Raises:
            AllProvidersFailedError: If every provider and the last-chance
                attempt failed
        """
        if options is None:
            options = LLMOptions(**kwargs)
        
        providers = self.eligible_providers()
        log = AttemptLog()
        self.last_attempts = log
        total_attempts = 0
        
        if not providers:
            logger.error("No LLM providers available (missing keys, quota or cooldown)")
        
        for provider in providers:
            if total_attempts >= self.config.max_total_retries:
                logger.warning("Max total retries reached")
                break
            
            retries = 0
            while retries < self.config.max_retries_per_provider:
                if total_attempts >= self.config.max_total_retries:
                    break
                total_attempts += 1
                
                logger.debug(
                    f"Attempting {provider.value} "
                    f"(attempt {retries + 1}/{self.config.max_retries_per_provider})"
                )
                
                start = time.time()
                result = await self._attempt(provider, prompt, options)
                
                if result.success:
                    self._record_success(provider)
                    latency = (time.time() - start) * 1000
                    if log:
                        logger.info(
                            f"Switched to {provider.value} after {len(log)} failed attempts "
                            f"({latency:.0f}ms)"
                        )
                    else:
                        logger.info(f"Completion successful with {provider.value} ({latency:.0f}ms)")
                    return LLMResponse(text=result.text, provider=provider.value)
                
                self._record_failure(provider, result, log)
                retries += 1
                
                if (
                    result.retryable
                    and retries < self.config.max_retries_per_provider
                    and total_attempts < self.config.max_total_retries
                ):
                    delay_ms = calculate_retry_delay(retries - 1, self.config)
                    logger.info(f"Retrying {provider.value} in {delay_ms:.0f}ms...")
                    await self._sleep(delay_ms / 1000)
                    continue
                
                logger.info(
                    f"Switching from {provider.value} to next provider due to: "
                    f"{result.error_kind or 'error'}"
                )
                break
        
        if providers:
            logger.error(
                f"All providers failed ({', '.join(log.providers_tried)}): {log.summaries()}"
            )
            
            # Rescue goes to the top of the list computed at call start, not the healthiest provider
            last_chance = providers[0]
            logger.info(f"Waiting {self.config.final_retry_delay_ms:.0f}ms before final attempt with {last_chance.value}")
            await self._sleep(self.config.final_retry_delay_ms / 1000)
            
            result = await self._attempt(last_chance, prompt, options)
            if result.success:
                self._record_success(last_chance)
                logger.info(f"Final retry successful with {last_chance.value}")
                return LLMResponse(text=result.text, provider=last_chance.value)
            
            self._record_failure(last_chance, result, log)
        
        raise AllProvidersFailedError(
            log.summaries(),
            attempts=[entry.to_dict() for entry in log],
        )
    
    async def generate(
        self,
        prompt: str,
        options: Optional[LLMOptions] = None,
        **kwargs
    ) -> LLMResponse:
        """
        call_llm() with one caller-level retry of the whole call.
        
        On AllProvidersFailedError, waits ``caller_retry_delay_ms`` and runs
        call_llm() again; a second failure propagates.
        """
        try:
            return await self.call_llm(prompt, options, **kwargs)
        except AllProvidersFailedError as e:
            logger.warning(f"{e.friendly_message} (retrying whole call once)")
            await self._sleep(self.config.caller_retry_delay_ms / 1000)
            return await self.call_llm(prompt, options, **kwargs)
    
    # -------------------------------------------------------------------------
    # Diagnostics & admin
    # -------------------------------------------------------------------------
    
    def has_free_llm_configured(self) -> bool:
        return bool(self.registry.configured_providers())
    
    def get_available_providers(self) -> List[str]:
        return [p.value for p in self.eligible_providers()]
    
    def get_quota_status(self) -> Dict[str, QuotaStatus]:
        return self.quota.get_status()
    
    def get_quota_warning(self) -> Optional[str]:
        return self.quota.get_warning()
    
    def get_provider_health_status(self) -> Dict[str, ProviderHealth]:
        return self.health.get_all()
    
    def reset_provider_health(self, provider: Union[str, ProviderId]) -> ProviderHealth:
        return self.health.reset(provider)
    
    def get_status(self) -> Dict[str, Any]:
        """Snapshot of every provider in the fallback chain."""
        quota = self.get_quota_status()
        health = self.get_provider_health_status()
        eligible = set(self.eligible_providers())
        
        status = []
        for provider in self.registry.priority:
            spec = self.registry.get(provider)
            record = health.get(provider.value) or ProviderHealth(provider=provider.value)
            status.append({
                "id": provider.value,
                "name": spec.name,
                "configured": self.registry.has_valid_api_key(provider),
                "eligible": provider in eligible,
                "healthy": record.is_healthy,
                "failures": record.consecutive_failures,
                "success_rate": round(record.success_rate, 2),
                "cooldown_until": record.cooldown_until,
                "quota_used": quota[provider.value].used,
                "quota_limit": quota[provider.value].limit,
            })
        
        return {
            "providers": status,
            "eligible_providers": sum(1 for s in status if s["eligible"]),
            "quota_warning": self.get_quota_warning(),
        }


# =============================================================================
# Global Instance
# =============================================================================

_router: Optional[FallbackRouter] = None


def get_router() -> FallbackRouter:
    """Get the global router, configured from the environment on first use."""
    global _router
    if _router is None:
        _router = FallbackRouter(config=OrchestratorConfig.from_env())
        _router.registry.log_startup_report()
    return _router


def set_router(router: Optional[FallbackRouter]) -> None:
    """Replace the global router (None forces a rebuild on next use)."""
    global _router
    _router = router


async def call_llm(prompt: str, options: Optional[LLMOptions] = None, **kwargs) -> LLMResponse:
    """Route a prompt through the global router."""
    return await get_router().call_llm(prompt, options, **kwargs)


async def generate(prompt: str, options: Optional[LLMOptions] = None, **kwargs) -> LLMResponse:
    """call_llm() with one whole-call retry on total failure."""
    return await get_router().generate(prompt, options, **kwargs)


def get_quota_status() -> Dict[str, QuotaStatus]:
    return get_router().get_quota_status()


def get_quota_warning() -> Optional[str]:
    return get_router().get_quota_warning()


def get_provider_health_status() -> Dict[str, ProviderHealth]:
    return get_router().get_provider_health_status()


def reset_provider_health(provider: Union[str, ProviderId]) -> ProviderHealth:
    return get_router().reset_provider_health(provider)


def has_free_llm_configured() -> bool:
    return get_router().has_free_llm_configured()


def get_available_providers() -> List[str]:
    return get_router().get_available_providers()

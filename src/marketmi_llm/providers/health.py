"""
Provider Health Tracking
========================

Rolling health state per provider, persisted across sessions.

Each record holds a consecutive-failure count, a smoothed success rate and an
optional cooldown expiry. Three consecutive failures mark a provider
unhealthy; one success restores it. A provider inside its cooldown window is
not eligible for routing.
"""

from __future__ import annotations

import time
import logging
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Optional, Union

from .registry import ProviderId, ProviderRegistry, as_provider_id
from .store import HEALTH_STORAGE_KEY, StateStore, read_state, write_state

logger = logging.getLogger(__name__)


UNHEALTHY_AFTER_FAILURES = 3
SUCCESS_RATE_GAIN = 0.1
SUCCESS_RATE_PENALTY = 0.2


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class ProviderHealth:
    """Health record for one provider. Timestamps are epoch milliseconds."""
    provider: str
    is_healthy: bool = True
    consecutive_failures: int = 0
    success_rate: float = 1.0
    last_error: Optional[str] = None
    last_error_time: Optional[float] = None
    cooldown_until: Optional[float] = None
    
    def in_cooldown(self, now_ms: float) -> bool:
        return self.cooldown_until is not None and now_ms < self.cooldown_until
    
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
    
    @classmethod
    def from_dict(cls, provider: str, data: Any) -> "ProviderHealth":
        """Rebuild from stored data; unusable fields fall back to defaults."""
        if not isinstance(data, dict):
            return cls(provider=provider)
        try:
            return cls(
                provider=provider,
                is_healthy=bool(data.get("is_healthy", True)),
                consecutive_failures=int(data.get("consecutive_failures", 0)),
                success_rate=min(1.0, max(0.0, float(data.get("success_rate", 1.0)))),
                last_error=data.get("last_error"),
                last_error_time=_optional_float(data.get("last_error_time")),
                cooldown_until=_optional_float(data.get("cooldown_until")),
            )
        except (TypeError, ValueError):
            logger.warning(f"Discarding corrupt health record for {provider}")
            return cls(provider=provider)


class HealthTracker:
    """
    Persisted health state for every provider.
    
    Nothing is cached between calls: each read goes to the store, and each
    update is a read-modify-write of the whole health blob.
    
    Example:
        tracker = HealthTracker(store, registry)
        tracker.record_failure("groq", "429 Too Many Requests", cooldown_ms=60_000)
        tracker.is_in_cooldown("groq")  # True for the next minute
    """
    
    def __init__(
        self,
        store: StateStore,
        registry: ProviderRegistry,
        clock: Callable[[], float] = _now_ms,
    ):
        self.store = store
        self.registry = registry
        self._clock = clock
    
    def _load(self) -> Dict[str, ProviderHealth]:
        stored = read_state(self.store, HEALTH_STORAGE_KEY)
        if not isinstance(stored, dict):
            stored = {}
        
        records = {}
        for provider in self.registry.priority:
            records[provider.value] = ProviderHealth(provider=provider.value)
        for name, data in stored.items():
            records[name] = ProviderHealth.from_dict(name, data)
        return records
    
    def _save(self, records: Dict[str, ProviderHealth]) -> None:
        write_state(
            self.store,
            HEALTH_STORAGE_KEY,
            {name: record.to_dict() for name, record in records.items()},
        )
    
    def get_all(self) -> Dict[str, ProviderHealth]:
        """Fresh health records, including defaults for unseen providers."""
        return self._load()
    
    def get(self, provider: Union[str, ProviderId]) -> ProviderHealth:
        key = as_provider_id(provider).value
        return self._load().get(key) or ProviderHealth(provider=key)
    
    def record_success(self, provider: Union[str, ProviderId]) -> ProviderHealth:
        key = as_provider_id(provider).value
        records = self._load()
        record = records.setdefault(key, ProviderHealth(provider=key))
        
        record.is_healthy = True
        record.consecutive_failures = 0
        record.last_error = None
        record.last_error_time = None
        record.success_rate = min(1.0, record.success_rate + SUCCESS_RATE_GAIN)
        
        self._save(records)
        return record
    
    def record_failure(
        self,
        provider: Union[str, ProviderId],
        error: Optional[str] = None,
        cooldown_ms: Optional[float] = None,
    ) -> ProviderHealth:
        key = as_provider_id(provider).value
        now = self._clock()
        records = self._load()
        record = records.setdefault(key, ProviderHealth(provider=key))
        
        record.consecutive_failures += 1
        record.last_error = error
        record.last_error_time = now
        record.success_rate = max(0.0, record.success_rate - SUCCESS_RATE_PENALTY)
        
        if record.consecutive_failures >= UNHEALTHY_AFTER_FAILURES:
            if record.is_healthy:
                logger.warning(
                    f"{key} marked unhealthy after {record.consecutive_failures} consecutive failures"
                )
            record.is_healthy = False
        
        if cooldown_ms and cooldown_ms > 0:
            record.cooldown_until = now + cooldown_ms
            logger.info(f"{key} in cooldown for {cooldown_ms / 1000:g}s")
        
        self._save(records)
        return record
    
    def is_in_cooldown(self, provider: Union[str, ProviderId]) -> bool:
        return self.get(provider).in_cooldown(self._clock())
    
    def reset(self, provider: Union[str, ProviderId]) -> ProviderHealth:
        """Restore a provider to a perfect, cooldown-free record."""
        key = as_provider_id(provider).value
        records = self._load()
        records[key] = ProviderHealth(provider=key)
        self._save(records)
        logger.info(f"Reset health for {key}")
        return records[key]


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)

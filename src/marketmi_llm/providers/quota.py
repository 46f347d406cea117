"""
Daily Quota Tracker
===================

Per-provider daily request counters with a calendar-day reset.

The persisted record looks like::

    {"date": "2026-10-18", "usage": {"groq": 12, "openrouter": 3, ...}}

A record whose date is not today is discarded and replaced with zeros the
first time it is read. Counts are only ever incremented by successful calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time as dt_time, timedelta
from typing import Any, Callable, Dict, Optional, Union

from .registry import ProviderId, ProviderRegistry, as_provider_id
from .store import QUOTA_STORAGE_KEY, StateStore, read_state, write_state

logger = logging.getLogger(__name__)


@dataclass
class QuotaStatus:
    """Quota snapshot for one provider."""
    provider: str
    used: int
    limit: int
    remaining: int
    reset_time: datetime
    
    @property
    def percent_used(self) -> float:
        if self.limit <= 0:
            return 0.0
        return (self.used / self.limit) * 100
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "used": self.used,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_time": self.reset_time.isoformat(),
        }


class QuotaTracker:
    """
    Daily request budget per provider, persisted in a StateStore.
    
    Every method re-reads the store so counts written by other processes
    are seen. Increments are read-modify-write without a lock; concurrent
    writers can lose an increment.
    """
    
    def __init__(
        self,
        store: StateStore,
        registry: ProviderRegistry,
        warning_threshold: float = 90.0,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.registry = registry
        self.warning_threshold = warning_threshold
        self._today = today
    
    def _fresh_record(self) -> Dict[str, Any]:
        return {
            "date": self._today().isoformat(),
            "usage": {p.value: 0 for p in self.registry.all_providers},
        }
    
    def _load(self) -> Dict[str, Any]:
        """Today's record, creating (and persisting) a zeroed one if needed."""
        stored = read_state(self.store, QUOTA_STORAGE_KEY)
        today = self._today().isoformat()
        
        if (
            isinstance(stored, dict)
            and stored.get("date") == today
            and isinstance(stored.get("usage"), dict)
        ):
            return stored
        
        if isinstance(stored, dict) and stored.get("date") not in (None, today):
            logger.info(f"Resetting LLM quota counters (last record: {stored.get('date')})")
        
        record = self._fresh_record()
        write_state(self.store, QUOTA_STORAGE_KEY, record)
        return record
    
    def increment(self, provider: Union[str, ProviderId]) -> int:
        """Count one successful call. Returns the new count for today."""
        key = as_provider_id(provider).value
        record = self._load()
        usage = record["usage"]
        usage[key] = _as_count(usage.get(key)) + 1
        write_state(self.store, QUOTA_STORAGE_KEY, record)
        return usage[key]
    
    def used(self, provider: Union[str, ProviderId]) -> int:
        key = as_provider_id(provider).value
        return _as_count(self._load()["usage"].get(key))
    
    def remaining(self, provider: Union[str, ProviderId]) -> int:
        limit = self.registry.quota_limit(provider)
        return max(0, limit - self.used(provider))
    
    def has_remaining(self, provider: Union[str, ProviderId]) -> bool:
        return self.remaining(provider) > 0
    
    def next_reset(self) -> datetime:
        """Local midnight at the start of tomorrow."""
        return datetime.combine(self._today() + timedelta(days=1), dt_time.min)
    
    def get_status(self) -> Dict[str, QuotaStatus]:
        """Quota snapshot for every registered provider."""
        usage = self._load()["usage"]
        reset_time = self.next_reset()
        
        status = {}
        for provider in self.registry.all_providers:
            used = _as_count(usage.get(provider.value))
            limit = self.registry.quota_limit(provider)
            status[provider.value] = QuotaStatus(
                provider=provider.value,
                used=used,
                limit=limit,
                remaining=max(0, limit - used),
                reset_time=reset_time,
            )
        return status
    
    def get_warning(self) -> Optional[str]:
        """
        Warning for the first fallback-chain provider near its daily limit.
        
        Returns:
            e.g. "Warning: GROQ at 93% quota", or None
        """
        status = self.get_status()
        for provider in self.registry.priority:
            entry = status[provider.value]
            if entry.limit > 0 and entry.percent_used >= self.warning_threshold:
                return f"Warning: {provider.value.upper()} at {entry.percent_used:.0f}% quota"
        return None
    

def _as_count(value: Any) -> int:
    """Stored counts may come back as anything; treat junk as zero."""
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0

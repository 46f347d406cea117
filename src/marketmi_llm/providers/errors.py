"""
Error Classification
====================

Maps raw provider failures (HTTP status + message text) to an ErrorKind and
the retry policy attached to it, plus the exceptions the router raises.

The table is heuristic by nature: upstream providers phrase the same failure
differently, so each kind matches on status codes OR message patterns, and the
first kind in table order wins.
"""

from __future__ import annotations

import re
import random
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from .base import CallAttemptResult
from ..config import OrchestratorConfig

logger = logging.getLogger(__name__)


# =============================================================================
# Error Kinds & Policies
# =============================================================================

class ErrorKind(Enum):
    """Classified failure kinds."""
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    QUOTA_EXHAUSTED = "quota_exhausted"
    MODEL_OVERLOADED = "model_overloaded"
    UNAUTHORIZED = "unauthorized"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class ErrorPolicy:
    """What the router does after a failure of a given kind."""
    codes: Tuple[int, ...]
    patterns: Tuple[Pattern[str], ...]
    retryable: bool        # retry on the same provider
    should_fallback: bool  # advance to the next provider
    cooldown_ms: int = 0   # provider ineligible for this long
    
    def matches(self, message: str, status_code: Optional[int] = None) -> bool:
        if status_code and status_code in self.codes:
            return True
        return any(p.search(message) for p in self.patterns)


def _patterns(*expressions: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(expr, re.IGNORECASE) for expr in expressions)


# Order matters: first match wins.
ERROR_PATTERNS: List[Tuple[ErrorKind, ErrorPolicy]] = [
    (ErrorKind.RATE_LIMITED, ErrorPolicy(
        codes=(429,),
        patterns=_patterns(r"rate.?limit", r"too.?many.?requests", r"quota.?exceeded", r"requests.?per"),
        retryable=False,
        should_fallback=True,
        cooldown_ms=60_000,
    )),
    (ErrorKind.SERVER_ERROR, ErrorPolicy(
        codes=(500, 502, 503, 504),
        patterns=_patterns(r"internal.?server", r"bad.?gateway", r"service.?unavailable", r"gateway.?timeout"),
        retryable=True,
        should_fallback=True,
        cooldown_ms=5_000,
    )),
    (ErrorKind.QUOTA_EXHAUSTED, ErrorPolicy(
        codes=(402, 403),
        patterns=_patterns(r"quota", r"billing", r"payment", r"credits", r"insufficient"),
        retryable=False,
        should_fallback=True,
        cooldown_ms=3_600_000,
    )),
    (ErrorKind.MODEL_OVERLOADED, ErrorPolicy(
        codes=(503,),
        patterns=_patterns(r"overloaded", r"capacity", r"currently.?loading", r"model.?is.?loading"),
        retryable=True,
        should_fallback=True,
        cooldown_ms=10_000,
    )),
    (ErrorKind.UNAUTHORIZED, ErrorPolicy(
        codes=(401,),
        patterns=_patterns(r"unauthorized", r"invalid.?api", r"authentication"),
        retryable=False,
        should_fallback=True,  # next provider has its own key
        cooldown_ms=0,
    )),
    (ErrorKind.TIMEOUT, ErrorPolicy(
        codes=(),
        patterns=_patterns(r"timeout", r"timed.?out", r"network", r"fetch.?failed", r"connect"),
        retryable=True,
        should_fallback=True,
        cooldown_ms=2_000,
    )),
]

_POLICIES: Dict[ErrorKind, ErrorPolicy] = dict(ERROR_PATTERNS)

UNCLASSIFIED_POLICY = ErrorPolicy(
    codes=(),
    patterns=(),
    retryable=False,
    should_fallback=True,
    cooldown_ms=0,
)


def get_policy(kind: Optional[ErrorKind]) -> ErrorPolicy:
    """Policy for a kind; unclassified errors fall back without cooldown."""
    if kind is None:
        return UNCLASSIFIED_POLICY
    return _POLICIES[kind]


def error_message(error: Any) -> str:
    """
    Best-effort message text for an error.
    
    Handles exceptions, ``{"message": ...}`` and ``{"error": {"message": ...}}``
    mappings, and anything else via str().
    """
    if error is None:
        return ""
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    if isinstance(error, dict):
        if isinstance(error.get("message"), str):
            return error["message"]
        nested = error.get("error")
        if isinstance(nested, dict) and isinstance(nested.get("message"), str):
            return nested["message"]
        if isinstance(nested, str):
            return nested
    return str(error)


def classify_error(error: Any, status_code: Optional[int] = None) -> Optional[ErrorKind]:
    """
    Classify a failure.
    
    Args:
        error: Exception, error mapping, or message string
        status_code: HTTP status code if the failure had one
        
    Returns:
        The first matching ErrorKind, or None if nothing matches
    """
    message = error_message(error)
    for kind, policy in ERROR_PATTERNS:
        if policy.matches(message, status_code):
            return kind
    return None


def apply_verdict(result: CallAttemptResult) -> CallAttemptResult:
    """Fill in the classifier verdict on a failed attempt result."""
    kind = classify_error(result.error, result.status_code)
    policy = get_policy(kind)
    result.error_kind = kind.value if kind else None
    result.retryable = policy.retryable
    result.should_fallback = policy.should_fallback
    result.cooldown_ms = policy.cooldown_ms
    return result


def calculate_retry_delay(attempt: int, config: Optional[OrchestratorConfig] = None) -> float:
    """
    Exponential backoff with jitter, in milliseconds.
    
    ``base * multiplier ** attempt`` capped at ``max_delay_ms``, then shifted
    by up to ``jitter_ms`` either way and floored at zero.
    """
    config = config or OrchestratorConfig()
    exponential = config.base_delay_ms * (config.backoff_multiplier ** attempt)
    capped = min(exponential, config.max_delay_ms)
    jitter = random.uniform(-config.jitter_ms, config.jitter_ms)
    return max(0.0, capped + jitter)


# =============================================================================
# Exceptions
# =============================================================================

class ProviderError(Exception):
    """Base exception for provider errors."""
    
    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        recoverable: bool = True,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.recoverable = recoverable
        self.status_code = status_code


class ProviderAPIError(ProviderError):
    """Non-2xx response from a provider; the message carries the body."""


class AllProvidersFailedError(ProviderError):
    """
    Every eligible provider and the last-chance attempt failed.
    
    Attributes:
        errors: Ordered (provider, error) summaries of every failed attempt
        attempts: Full AttemptRecord dicts, including status and kind
        friendly_message: Text suitable for end users
    """
    
    FRIENDLY_MESSAGE = "Taking a quick breather, trying again..."
    
    def __init__(
        self,
        errors: Sequence[Dict[str, str]],
        attempts: Optional[Sequence[Dict[str, Any]]] = None,
    ):
        super().__init__("All LLM providers failed", provider="router", recoverable=True)
        self.errors = list(errors)
        self.attempts = list(attempts or [])
        self.friendly_message = self.FRIENDLY_MESSAGE
    
    @property
    def providers_tried(self) -> List[str]:
        seen: List[str] = []
        for entry in self.errors:
            if entry["provider"] not in seen:
                seen.append(entry["provider"])
        return seen
    
    def __str__(self) -> str:
        if not self.errors:
            return f"{self.message} (no providers available)"
        detail = "; ".join(f"{e['provider']}: {e['error'][:100]}" for e in self.errors[-3:])
        return f"{self.message} after {len(self.errors)} attempts. Errors: {detail}"

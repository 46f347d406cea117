"""
Provider Base Types
===================

Shared request/response types used by the router and every adapter.

This module provides:
- Tier: quality/latency class requested by the caller
- Message / Role: chat message helpers for message-array APIs
- LLMOptions / LLMResponse: the public request and success shapes
- CallAttemptResult: outcome of a single adapter call
- AttemptLog: ordered record of failed attempts inside one routed call
- ProviderAdapter: protocol every adapter implements
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Dict,
    Iterator,
    List,
    Optional,
    Protocol,
    runtime_checkable,
)
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================

class Tier(Enum):
    """Quality tier requested by the caller."""
    FAST = "fast"
    REASONING = "reasoning"


class Role(Enum):
    """Message roles for chat completions."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class Message:
    """
    A single message in a chat-completions request.
    
    Examples:
        msg = Message.system("You are a marketing assistant.")
        msg = Message.user("Draft a tagline for a bakery.")
    """
    role: Role
    content: str
    
    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary for API calls."""
        return {"role": self.role.value, "content": self.content}
    
    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(Role.SYSTEM, content)
    
    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(Role.USER, content)


@dataclass
class LLMOptions:
    """
    Options for a single logical LLM call.
    
    Attributes:
        tier: "fast" or "reasoning"; selects the model per provider
        system_prompt: Optional system instructions
        temperature: Sampling temperature (adapter default 0.7)
        max_tokens: Response ceiling (adapter default is the provider's max)
    """
    tier: Tier = Tier.FAST
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    
    def __post_init__(self):
        if isinstance(self.tier, str):
            self.tier = Tier(self.tier)
    
    def build_messages(self, prompt: str) -> List[Message]:
        """Build the message list for message-array APIs."""
        messages = []
        if self.system_prompt:
            messages.append(Message.system(self.system_prompt))
        messages.append(Message.user(prompt))
        return messages


@dataclass
class LLMResponse:
    """Successful result of a routed call."""
    text: str
    provider: str
    
    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "provider": self.provider}


@dataclass
class CallAttemptResult:
    """
    Outcome of one adapter call. Not persisted.
    
    The classifier verdict fields are filled in on failure; an adapter only
    has to set success/text or error/status_code.
    """
    success: bool
    text: Optional[str] = None
    error: Optional[BaseException] = None
    status_code: Optional[int] = None
    error_kind: Optional[str] = None
    retryable: bool = False
    should_fallback: bool = True
    cooldown_ms: int = 0
    
    @classmethod
    def ok(cls, text: str) -> "CallAttemptResult":
        return cls(success=True, text=text)
    
    @classmethod
    def failed(
        cls,
        error: BaseException,
        status_code: Optional[int] = None,
    ) -> "CallAttemptResult":
        return cls(success=False, error=error, status_code=status_code)
    
    @property
    def error_message(self) -> str:
        if self.error is None:
            return "Unknown error"
        return str(self.error) or type(self.error).__name__


@dataclass
class AttemptRecord:
    """One failed attempt, as surfaced in the terminal error."""
    provider: str
    error: str
    status_code: Optional[int] = None
    error_kind: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "error": self.error,
            "status_code": self.status_code,
            "error_kind": self.error_kind,
            "timestamp": self.timestamp,
        }


class AttemptLog:
    """
    Ordered log of failed attempts within one routed call.
    
    Intermediate failures are never raised to the caller; they accumulate
    here and are handed to AllProvidersFailedError on exhaustion.
    """
    
    def __init__(self):
        self._records: List[AttemptRecord] = []
    
    def record(
        self,
        provider: str,
        result: CallAttemptResult,
    ) -> AttemptRecord:
        entry = AttemptRecord(
            provider=provider,
            error=result.error_message,
            status_code=result.status_code,
            error_kind=result.error_kind,
        )
        self._records.append(entry)
        return entry
    
    @property
    def providers_tried(self) -> List[str]:
        """Distinct providers in the order they were first tried."""
        seen: List[str] = []
        for entry in self._records:
            if entry.provider not in seen:
                seen.append(entry.provider)
        return seen
    
    def summaries(self) -> List[Dict[str, str]]:
        """Per-attempt (provider, error) summaries."""
        return [{"provider": r.provider, "error": r.error} for r in self._records]
    
    def __iter__(self) -> Iterator[AttemptRecord]:
        return iter(self._records)
    
    def __len__(self) -> int:
        return len(self._records)
    
    def __bool__(self) -> bool:
        return bool(self._records)


# =============================================================================
# Protocol Definition
# =============================================================================

@runtime_checkable
class ProviderAdapter(Protocol):
    """
    Protocol for provider adapters.
    
    An adapter translates the uniform prompt/options into one provider's wire
    format. API-level failures come back as a failed CallAttemptResult;
    transport errors (DNS, refused connection, timeouts) may propagate.
    """
    
    provider_id: str
    
    async def call(self, prompt: str, options: LLMOptions) -> CallAttemptResult:
        ...

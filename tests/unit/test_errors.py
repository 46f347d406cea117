"""
Tests for Error Classification
==============================

Classifies real provider error bodies and checks the retry policy table,
backoff math and the terminal exception.
"""

import asyncio
from unittest.mock import patch

import aiohttp
import pytest

from marketmi_llm.config import OrchestratorConfig
from marketmi_llm.providers import (
    AllProvidersFailedError,
    CallAttemptResult,
    ErrorKind,
    ProviderAPIError,
    calculate_retry_delay,
    classify_error,
    get_policy,
)
from marketmi_llm.providers.errors import apply_verdict, error_message


GROQ_RATE_LIMIT = (
    'Groq API error 429: {"error":{"message":"Rate limit reached for model '
    '`llama-3.3-70b-versatile` in organization `org_01` on requests per day (RPD): '
    'Limit 14400, Used 14400, Requested 1. Please try again in 6s.",'
    '"type":"requests","code":"rate_limit_exceeded"}}'
)
OPENROUTER_CREDITS = (
    'OpenRouter API error 402: {"error":{"message":"Insufficient credits. '
    'Add more using https://openrouter.ai/credits","code":402}}'
)
HF_LOADING = (
    'HuggingFace API error 503: {"error":"Model mistralai/Mixtral-8x7B-Instruct-v0.1 '
    'is currently loading","estimated_time":20.0}'
)
GROQ_BAD_KEY = (
    'Groq API error 401: {"error":{"message":"Invalid API Key",'
    '"type":"invalid_request_error","code":"invalid_api_key"}}'
)


# =============================================================================
# Classification
# =============================================================================

class TestClassifyError:
    """Status codes and message text map to error kinds."""
    
    def test_groq_rate_limit(self):
        assert classify_error(ProviderAPIError(GROQ_RATE_LIMIT), 429) == ErrorKind.RATE_LIMITED
    
    def test_rate_limit_by_message_only(self):
        assert classify_error("Too Many Requests") == ErrorKind.RATE_LIMITED
    
    def test_openrouter_insufficient_credits(self):
        assert classify_error(ProviderAPIError(OPENROUTER_CREDITS), 402) == ErrorKind.QUOTA_EXHAUSTED
    
    def test_forbidden_is_quota_exhausted(self):
        assert classify_error("Forbidden", 403) == ErrorKind.QUOTA_EXHAUSTED
    
    def test_503_matches_server_error_before_overloaded(self):
        # Both kinds list 503; the earlier table entry wins
        assert classify_error(ProviderAPIError(HF_LOADING), 503) == ErrorKind.SERVER_ERROR
    
    def test_loading_message_without_status_is_overloaded(self):
        assert classify_error("Model is currently loading") == ErrorKind.MODEL_OVERLOADED
    
    def test_bad_gateway(self):
        assert classify_error("502 Bad Gateway", 502) == ErrorKind.SERVER_ERROR
    
    def test_invalid_api_key(self):
        assert classify_error(ProviderAPIError(GROQ_BAD_KEY), 401) == ErrorKind.UNAUTHORIZED
    
    def test_asyncio_timeout_without_message(self):
        assert classify_error(asyncio.TimeoutError()) == ErrorKind.TIMEOUT
    
    def test_connection_error(self):
        error = aiohttp.ClientConnectionError("Cannot connect to host api.groq.com:443")
        assert classify_error(error) == ErrorKind.TIMEOUT
    
    def test_case_insensitive(self):
        assert classify_error("RATE LIMIT EXCEEDED") == ErrorKind.RATE_LIMITED
    
    def test_unclassified(self):
        assert classify_error(RuntimeError("something odd happened")) is None
    
    def test_nested_error_mapping(self):
        error = {"error": {"message": "You exceeded your current quota"}}
        assert classify_error(error) == ErrorKind.QUOTA_EXHAUSTED
    
    def test_none_error(self):
        assert classify_error(None) is None


class TestErrorMessage:
    """Message extraction from assorted error shapes."""
    
    def test_exception_text(self):
        assert error_message(ValueError("bad value")) == "bad value"
    
    def test_exception_without_text_uses_type_name(self):
        assert error_message(asyncio.TimeoutError()) == "TimeoutError"
    
    def test_flat_mapping(self):
        assert error_message({"message": "oops"}) == "oops"
    
    def test_string_error_field(self):
        assert error_message({"error": "Model is loading"}) == "Model is loading"


# =============================================================================
# Policies
# =============================================================================

class TestPolicies:
    """Retry, fallback and cooldown per kind."""
    
    def test_cooldowns(self):
        assert get_policy(ErrorKind.RATE_LIMITED).cooldown_ms == 60_000
        assert get_policy(ErrorKind.SERVER_ERROR).cooldown_ms == 5_000
        assert get_policy(ErrorKind.QUOTA_EXHAUSTED).cooldown_ms == 3_600_000
        assert get_policy(ErrorKind.MODEL_OVERLOADED).cooldown_ms == 10_000
        assert get_policy(ErrorKind.UNAUTHORIZED).cooldown_ms == 0
        assert get_policy(ErrorKind.TIMEOUT).cooldown_ms == 2_000
    
    def test_retryable_kinds(self):
        retryable = {kind for kind in ErrorKind if get_policy(kind).retryable}
        assert retryable == {ErrorKind.SERVER_ERROR, ErrorKind.MODEL_OVERLOADED, ErrorKind.TIMEOUT}
    
    def test_every_kind_falls_back(self):
        assert all(get_policy(kind).should_fallback for kind in ErrorKind)
    
    def test_unclassified_policy(self):
        policy = get_policy(None)
        assert not policy.retryable
        assert policy.should_fallback
        assert policy.cooldown_ms == 0
    
    def test_apply_verdict_fills_result(self):
        result = CallAttemptResult.failed(ProviderAPIError(GROQ_RATE_LIMIT), status_code=429)
        
        apply_verdict(result)
        
        assert result.error_kind == "rate_limited"
        assert not result.retryable
        assert result.cooldown_ms == 60_000


# =============================================================================
# Backoff
# =============================================================================

class TestRetryDelay:
    """Exponential backoff with jitter."""
    
    def test_grows_and_caps_without_jitter(self):
        config = OrchestratorConfig(jitter_ms=0)
        delays = [calculate_retry_delay(attempt, config) for attempt in range(12)]
        
        assert delays[0] == 500
        assert delays[1] == 750
        assert delays == sorted(delays)
        assert max(delays) == 5000
    
    def test_jitter_stays_in_bounds(self):
        for attempt in range(10):
            delay = calculate_retry_delay(attempt)
            assert 0 <= delay <= 5200
    
    def test_jitter_applied(self):
        with patch("marketmi_llm.providers.errors.random.uniform", return_value=-200):
            assert calculate_retry_delay(0) == 300
        with patch("marketmi_llm.providers.errors.random.uniform", return_value=200):
            assert calculate_retry_delay(20) == 5200
    
    def test_never_negative(self):
        config = OrchestratorConfig(base_delay_ms=100, jitter_ms=500)
        with patch("marketmi_llm.providers.errors.random.uniform", return_value=-500):
            assert calculate_retry_delay(0, config) == 0.0


# =============================================================================
# Terminal error
# =============================================================================

class TestAllProvidersFailedError:
    """The one error callers see."""
    
    def test_payload(self):
        errors = [
            {"provider": "groq", "error": "Groq API error 429: rate limit"},
            {"provider": "openrouter", "error": "OpenRouter API error 402: credits"},
            {"provider": "groq", "error": "Groq API error 429: rate limit"},
        ]
        error = AllProvidersFailedError(errors)
        
        assert error.message == "All LLM providers failed"
        assert error.errors == errors
        assert error.providers_tried == ["groq", "openrouter"]
        assert error.friendly_message == "Taking a quick breather, trying again..."
        assert "after 3 attempts" in str(error)
    
    def test_is_provider_error(self):
        from marketmi_llm.providers import ProviderError
        
        with pytest.raises(ProviderError):
            raise AllProvidersFailedError([])

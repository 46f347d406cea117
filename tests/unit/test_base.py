"""
Tests for Provider Base Types
=============================
"""

import pytest

from marketmi_llm.providers import (
    AttemptLog,
    CallAttemptResult,
    LLMOptions,
    LLMResponse,
    Message,
    ProviderAPIError,
    Role,
    Tier,
)


class TestLLMOptions:
    """Request options."""
    
    def test_defaults(self):
        options = LLMOptions()
        assert options.tier == Tier.FAST
        assert options.system_prompt is None
    
    def test_string_tier(self):
        assert LLMOptions(tier="reasoning").tier == Tier.REASONING
    
    def test_unknown_tier(self):
        with pytest.raises(ValueError):
            LLMOptions(tier="genius")
    
    def test_build_messages(self):
        messages = LLMOptions(system_prompt="Be kind.").build_messages("Hello")
        assert [m.role for m in messages] == [Role.SYSTEM, Role.USER]
        assert messages[1].to_dict() == {"role": "user", "content": "Hello"}
    
    def test_message_helpers(self):
        assert Message.system("x").role == Role.SYSTEM
        assert Message.user("y").content == "y"


class TestAttemptLog:
    """Failure history within one call."""
    
    def test_records_in_order(self):
        log = AttemptLog()
        assert not log
        
        log.record("groq", CallAttemptResult.failed(ProviderAPIError("Groq API error 429: slow down"), 429))
        log.record("openrouter", CallAttemptResult.failed(TimeoutError()))
        log.record("groq", CallAttemptResult.failed(ProviderAPIError("Groq API error 500: oops"), 500))
        
        assert len(log) == 3
        assert log.providers_tried == ["groq", "openrouter"]
        assert log.summaries()[1] == {"provider": "openrouter", "error": "TimeoutError"}
        assert [r.status_code for r in log] == [429, None, 500]
    
    def test_record_dict(self):
        log = AttemptLog()
        entry = log.record("groq", CallAttemptResult.failed(ValueError("bad")))
        
        data = entry.to_dict()
        assert data["provider"] == "groq"
        assert data["error"] == "bad"
        assert "timestamp" in data


class TestResults:
    def test_ok(self):
        result = CallAttemptResult.ok("hi")
        assert result.success and result.text == "hi"
    
    def test_response_dict(self):
        assert LLMResponse("hi", "groq").to_dict() == {"text": "hi", "provider": "groq"}

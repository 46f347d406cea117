"""
Test doubles for the provider layer.

ScriptedAdapter stands in for a real adapter; FakeSession / FakeResponse
stand in for aiohttp when exercising the real adapters.
"""

import json
from dataclasses import replace
from typing import Any, Dict, List, Optional, Union

from marketmi_llm.providers import CallAttemptResult, LLMOptions, ProviderAPIError


def ok(text: str = "Hello from the model") -> CallAttemptResult:
    return CallAttemptResult.ok(text)


def http_error(status: int, body: str = "", provider: str = "test") -> CallAttemptResult:
    return CallAttemptResult.failed(
        ProviderAPIError(f"Test API error {status}: {body}", provider=provider, status_code=status),
        status_code=status,
    )


class ScriptedAdapter:
    """Returns (or raises) queued outcomes in order, then repeats ``default``."""
    
    def __init__(
        self,
        provider_id: str,
        outcomes: Optional[List[Union[CallAttemptResult, BaseException]]] = None,
        default: Union[CallAttemptResult, BaseException, None] = None,
    ):
        self.provider_id = provider_id
        self.outcomes = list(outcomes or [])
        self.default = default if default is not None else http_error(500, "Internal Server Error")
        self.calls: List[Dict[str, Any]] = []
    
    async def call(self, prompt: str, options: LLMOptions) -> CallAttemptResult:
        self.calls.append({"prompt": prompt, "options": options})
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, BaseException):
            raise outcome
        return replace(outcome)


class FakeResponse:
    def __init__(self, status: int = 200, body: Any = None):
        self.status = status
        self._body = body if isinstance(body, str) else json.dumps(body)
    
    async def text(self) -> str:
        return self._body
    
    async def json(self, content_type: Optional[str] = "application/json") -> Any:
        return json.loads(self._body)
    
    async def __aenter__(self) -> "FakeResponse":
        return self
    
    async def __aexit__(self, *exc_info) -> None:
        return None


class FakeSession:
    """Records posts and answers each with the next queued FakeResponse."""
    
    def __init__(self, *responses: FakeResponse):
        self.responses = list(responses)
        self.requests: List[Dict[str, Any]] = []
        self.closed = False
    
    def post(self, url: str, **kwargs) -> FakeResponse:
        self.requests.append({"url": url, **kwargs})
        return self.responses.pop(0)

"""
Provider Adapters
=================

Translate the uniform (prompt, options) request into each provider's wire
format and back.

Two wire formats cover every registered provider:
    ChatCompletionsAdapter  - OpenAI-style message arrays (Groq, OpenRouter, OpenAI)
    TextGenerationAdapter   - single formatted prompt string (HuggingFace Inference)

Both satisfy the ProviderAdapter protocol; they share the HTTP round trip
through post_json() rather than a base class.

Adapters return a failed CallAttemptResult for any non-2xx response, with
the full response body in the error message so the classifier can see it.
Transport errors (DNS, refused connections, timeouts) propagate.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Tuple, Union

import aiohttp

from .base import CallAttemptResult, LLMOptions
from .errors import ProviderAPIError
from .registry import ApiStyle, ProviderId, ProviderSpec

logger = logging.getLogger(__name__)


DEFAULT_TEMPERATURE = 0.7

OPENROUTER_REFERER = "https://marketmi.shakesdigital.com"
OPENROUTER_TITLE = "Market MI Marketing Assistant"

SessionFactory = Callable[[], aiohttp.ClientSession]


def bearer_headers(api_key: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    headers.update(extra or {})
    return headers


async def post_json(
    spec: ProviderSpec,
    session: aiohttp.ClientSession,
    url: str,
    headers: Dict[str, str],
    body: Dict[str, Any],
    timeout_seconds: Optional[float] = None,
) -> Tuple[Optional[Any], Optional[CallAttemptResult]]:
    """
    POST a JSON body and decode the JSON reply.
    
    Returns:
        (data, None) on a 2xx with valid JSON, otherwise (None, failed result)
    """
    request_kwargs: Dict[str, Any] = {"headers": headers, "json": body}
    if timeout_seconds is not None:
        request_kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout_seconds)
    
    async with session.post(url, **request_kwargs) as response:
        if not 200 <= response.status < 300:
            error_text = await response.text()
            return None, CallAttemptResult.failed(
                ProviderAPIError(
                    f"{spec.name} API error {response.status}: {error_text}",
                    provider=spec.id.value,
                    status_code=response.status,
                ),
                status_code=response.status,
            )
        
        try:
            data = await response.json(content_type=None)
        except ValueError as e:
            return None, CallAttemptResult.failed(
                ProviderAPIError(
                    f"{spec.name} returned invalid JSON: {e}",
                    provider=spec.id.value,
                    status_code=response.status,
                ),
                status_code=response.status,
            )
    
    return data, None


def _temperature(options: LLMOptions) -> float:
    return options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE


def _as_text(content: Any) -> str:
    """
    Reply text from a content field.
    
    Some OpenAI-compatible gateways return a list of parts
    (``[{"type": "text", "text": ...}]``); their text parts are joined.
    Anything else that is not a string reads as empty.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    return ""


class ChatCompletionsAdapter:
    """
    OpenAI-compatible chat completions.
    
    Request:  {"model", "messages": [system?, user], "temperature", "max_tokens"}
    Response: choices[0].message.content
    """
    
    def __init__(
        self,
        spec: ProviderSpec,
        api_key: str,
        session_factory: SessionFactory,
        timeout_seconds: Optional[float] = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ):
        self.spec = spec
        self.provider_id = spec.id.value
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.extra_headers = dict(extra_headers or {})
        self._session_factory = session_factory
    
    def build_body(self, prompt: str, options: LLMOptions) -> Dict[str, Any]:
        return {
            "model": self.spec.model_for(options.tier),
            "messages": [m.to_dict() for m in options.build_messages(prompt)],
            "temperature": _temperature(options),
            "max_tokens": options.max_tokens or self.spec.max_tokens,
        }
    
    async def call(self, prompt: str, options: LLMOptions) -> CallAttemptResult:
        body = self.build_body(prompt, options)
        data, failure = await post_json(
            self.spec,
            self._session_factory(),
            self.spec.endpoint_for(body["model"]),
            bearer_headers(self.api_key, self.extra_headers),
            body,
            self.timeout_seconds,
        )
        if failure:
            return failure
        
        try:
            text = _as_text(data["choices"][0]["message"]["content"])
        except (KeyError, IndexError, TypeError):
            text = ""
        return CallAttemptResult.ok(text)
    
    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider={self.provider_id!r})"


class TextGenerationAdapter:
    """
    HuggingFace text-generation inference.
    
    There is no system role, so the system prompt is folded into a
    "System / User / Assistant" transcript.
    """
    
    def __init__(
        self,
        spec: ProviderSpec,
        api_key: str,
        session_factory: SessionFactory,
        timeout_seconds: Optional[float] = None,
    ):
        self.spec = spec
        self.provider_id = spec.id.value
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._session_factory = session_factory
    
    @staticmethod
    def format_prompt(prompt: str, system_prompt: Optional[str] = None) -> str:
        system_part = f"System: {system_prompt}\n\n" if system_prompt else ""
        return f"{system_part}User: {prompt}\n\nAssistant:"
    
    def build_body(self, prompt: str, options: LLMOptions) -> Dict[str, Any]:
        return {
            "inputs": self.format_prompt(prompt, options.system_prompt),
            "parameters": {
                "temperature": _temperature(options),
                "max_new_tokens": options.max_tokens or self.spec.max_tokens,
                "return_full_text": False,
            },
        }
    
    async def call(self, prompt: str, options: LLMOptions) -> CallAttemptResult:
        data, failure = await post_json(
            self.spec,
            self._session_factory(),
            self.spec.endpoint_for(self.spec.model_for(options.tier)),
            bearer_headers(self.api_key),
            self.build_body(prompt, options),
            self.timeout_seconds,
        )
        if failure:
            return failure
        
        # The API answers with either [{"generated_text": ...}] or {"generated_text": ...}
        if isinstance(data, list):
            data = data[0] if data else {}
        text = data.get("generated_text") if isinstance(data, dict) else None
        return CallAttemptResult.ok(_as_text(text).strip())
    
    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider={self.provider_id!r})"


def create_adapter(
    spec: ProviderSpec,
    api_key: str,
    session_factory: SessionFactory,
    timeout_seconds: Optional[float] = None,
) -> Union[ChatCompletionsAdapter, TextGenerationAdapter]:
    """Build the adapter matching a provider's wire format."""
    if spec.api_style == ApiStyle.TEXT_GENERATION:
        return TextGenerationAdapter(spec, api_key, session_factory, timeout_seconds)
    
    extra_headers = None
    if spec.id == ProviderId.OPENROUTER:
        extra_headers = {"HTTP-Referer": OPENROUTER_REFERER, "X-Title": OPENROUTER_TITLE}
    
    return ChatCompletionsAdapter(
        spec, api_key, session_factory, timeout_seconds, extra_headers=extra_headers
    )

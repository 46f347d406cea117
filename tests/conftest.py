"""Shared fixtures for the router test suite."""

from unittest.mock import AsyncMock

import pytest

from marketmi_llm.config import OrchestratorConfig
from marketmi_llm.providers import FallbackRouter, MemoryStore, ProviderRegistry


VALID_KEYS = {
    "groq": "gsk_test_groq_0123456789abcdef",
    "openrouter": "sk-or-v1-test-0123456789abcdef",
    "huggingface": "hf_test_0123456789abcdefghij",
}


@pytest.fixture
def api_keys():
    return dict(VALID_KEYS)


@pytest.fixture
def config():
    return OrchestratorConfig()


@pytest.fixture
def registry(api_keys, config):
    return ProviderRegistry(api_keys=api_keys, config=config)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_router(registry, store, config):
    """Build a router over scripted adapters with backoff sleeps mocked out."""
    def _make(adapters, **overrides):
        router = FallbackRouter(
            registry=overrides.get("registry", registry),
            store=overrides.get("store", store),
            config=overrides.get("config", config),
            adapters=adapters,
            sleep=AsyncMock(),
        )
        return router
    return _make

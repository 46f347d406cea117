"""
Tests for OrchestratorConfig
============================
"""

from pathlib import Path

import pytest

from marketmi_llm.config import (
    CONFIG_ENV_VAR,
    DEFAULT_STATE_PATH,
    STATE_ENV_VAR,
    ConfigError,
    OrchestratorConfig,
)


class TestDefaults:
    """Built-in values."""
    
    def test_retry_defaults(self):
        config = OrchestratorConfig()
        assert config.max_retries_per_provider == 2
        assert config.max_total_retries == 5
        assert config.base_delay_ms == 500
        assert config.max_delay_ms == 5000
        assert config.backoff_multiplier == 1.5
        assert config.final_retry_delay_ms == 2000
    
    def test_default_state_path(self):
        assert OrchestratorConfig().resolved_state_path == DEFAULT_STATE_PATH
    
    def test_state_path_expanded(self):
        config = OrchestratorConfig(state_path="~/llm.json")
        assert config.state_path == Path.home() / "llm.json"
    
    @pytest.mark.parametrize("kwargs", [
        {"max_retries_per_provider": 0},
        {"max_total_retries": 0},
        {"base_delay_ms": 6000},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigError):
            OrchestratorConfig(**kwargs)


class TestYaml:
    """Loading and saving YAML."""
    
    def test_round_trip(self, tmp_path):
        saved = OrchestratorConfig(
            max_total_retries=3,
            provider_priority=["openrouter", "groq"],
            quota_limits={"openrouter": 150},
            request_timeout_seconds=20,
            state_path=tmp_path / "state.json",
        )
        path = tmp_path / "config" / "llm.yaml"
        
        saved.to_yaml(path)
        loaded = OrchestratorConfig.from_yaml(path)
        
        assert loaded == saved
    
    def test_partial_file(self, tmp_path):
        path = tmp_path / "llm.yaml"
        path.write_text("max_retries_per_provider: 3\nquota_limits:\n  groq: 100\n")
        
        config = OrchestratorConfig.from_yaml(path)
        
        assert config.max_retries_per_provider == 3
        assert config.quota_limits == {"groq": 100}
        assert config.max_total_retries == 5
    
    def test_empty_file(self, tmp_path):
        path = tmp_path / "llm.yaml"
        path.write_text("")
        assert OrchestratorConfig.from_yaml(path) == OrchestratorConfig()
    
    def test_unknown_keys_ignored(self, tmp_path, caplog):
        path = tmp_path / "llm.yaml"
        path.write_text("max_total_retries: 4\nfavourite_colour: teal\n")
        
        config = OrchestratorConfig.from_yaml(path)
        
        assert config.max_total_retries == 4
        assert "favourite_colour" in caplog.text
    
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            OrchestratorConfig.from_yaml(tmp_path / "nope.yaml")
    
    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "llm.yaml"
        path.write_text("- groq\n- openrouter\n")
        with pytest.raises(ConfigError, match="expected dict"):
            OrchestratorConfig.from_yaml(path)
    
    def test_bad_priority_type(self):
        with pytest.raises(ConfigError):
            OrchestratorConfig.from_dict({"provider_priority": "groq"})


class TestFromEnv:
    """Environment overrides."""
    
    def test_no_env(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.delenv(STATE_ENV_VAR, raising=False)
        assert OrchestratorConfig.from_env() == OrchestratorConfig()
    
    def test_config_and_state_from_env(self, monkeypatch, tmp_path):
        path = tmp_path / "llm.yaml"
        path.write_text("max_total_retries: 7\nstate_path: /tmp/from-yaml.json\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        monkeypatch.setenv(STATE_ENV_VAR, str(tmp_path / "from-env.json"))
        
        config = OrchestratorConfig.from_env()
        
        assert config.max_total_retries == 7
        assert config.state_path == tmp_path / "from-env.json"

"""
Tests for Secrets Loading
=========================
"""

import os

import pytest

from marketmi_llm import secrets


@pytest.fixture
def clean_env(monkeypatch):
    # setenv first so monkeypatch restores whatever load_secrets() writes
    for env_var in secrets.SECRET_FILES.values():
        monkeypatch.setenv(env_var, "")
        monkeypatch.delenv(env_var)
    return monkeypatch


@pytest.fixture
def secrets_dir(tmp_path):
    path = tmp_path / ".secrets"
    path.mkdir()
    (path / "groq_key").write_text("gsk_from_file_0123456789\n")
    (path / "openrouter_key").write_text("")
    return path


class TestLoadSecrets:
    """Loading key files into the environment."""
    
    def test_loads_into_environment(self, clean_env, secrets_dir):
        loaded = secrets.load_secrets(secrets_dir)
        
        assert loaded == {"GROQ_API_KEY": "gsk_from_file_0123456789"}
        assert os.environ["GROQ_API_KEY"] == "gsk_from_file_0123456789"
        assert "OPENROUTER_API_KEY" not in os.environ
    
    def test_existing_variable_kept(self, clean_env, secrets_dir):
        clean_env.setenv("GROQ_API_KEY", "gsk_already_exported")
        
        assert secrets.load_secrets(secrets_dir) == {}
        assert os.environ["GROQ_API_KEY"] == "gsk_already_exported"
    
    def test_override(self, clean_env, secrets_dir):
        clean_env.setenv("GROQ_API_KEY", "gsk_already_exported")
        
        secrets.load_secrets(secrets_dir, override=True)
        
        assert os.environ["GROQ_API_KEY"] == "gsk_from_file_0123456789"
    
    def test_auto_detects_cwd(self, clean_env, secrets_dir):
        clean_env.chdir(secrets_dir.parent)
        
        assert secrets.find_secrets_dir() == secrets_dir
        assert "GROQ_API_KEY" in secrets.load_secrets()
    
    def test_no_directory(self, clean_env, tmp_path):
        clean_env.chdir(tmp_path)
        clean_env.setenv("HOME", str(tmp_path))
        
        assert secrets.find_secrets_dir() is None
        assert secrets.load_secrets() == {}
    
    def test_check_secrets(self, clean_env):
        clean_env.setenv("HUGGINGFACE_API_KEY", "hf_abcdefghijklmnop")
        
        status = secrets.check_secrets()
        
        assert status["HUGGINGFACE_API_KEY"] is True
        assert status["GROQ_API_KEY"] is False

"""
Secrets Management
==================

Loads provider API keys from a .secrets/ directory into environment
variables, so the provider registry finds them without manual exports.

Secrets are stored one per file:
    .secrets/groq_key         -> GROQ_API_KEY
    .secrets/openrouter_key   -> OPENROUTER_API_KEY
    .secrets/huggingface_key  -> HUGGINGFACE_API_KEY
    .secrets/openai_key       -> OPENAI_API_KEY

Keys must be loaded before the router (and its registry) is built, since
credentials are read once at startup.

Usage:
    from marketmi_llm import secrets
    secrets.load_secrets()
"""

import os
import logging
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


SECRET_FILES: Dict[str, str] = {
    "groq_key": "GROQ_API_KEY",
    "openrouter_key": "OPENROUTER_API_KEY",
    "huggingface_key": "HUGGINGFACE_API_KEY",
    "openai_key": "OPENAI_API_KEY",
}


def find_secrets_dir() -> Optional[Path]:
    """
    Find the .secrets directory.
    
    Looks in the current working directory, then the user's home directory.
    """
    for candidate in (Path.cwd() / ".secrets", Path.home() / ".secrets"):
        if candidate.is_dir():
            return candidate
    return None


def load_secrets(secrets_dir: Optional[Path] = None, override: bool = False) -> Dict[str, str]:
    """
    Load secrets from .secrets/ into environment variables.
    
    Args:
        secrets_dir: Path to secrets directory (auto-detected if None)
        override: Whether to override existing environment variables
        
    Returns:
        Dict of loaded secrets (env var -> value)
    """
    if secrets_dir is None:
        secrets_dir = find_secrets_dir()
    
    if secrets_dir is None:
        logger.debug("No .secrets directory found")
        return {}
    
    loaded = {}
    
    for filename, env_var in SECRET_FILES.items():
        secret_file = Path(secrets_dir) / filename
        
        if not secret_file.exists():
            continue
        
        if env_var in os.environ and not override:
            logger.debug(f"{env_var} already set, skipping")
            continue
        
        try:
            secret_value = secret_file.read_text().strip()
        except OSError as e:
            logger.error(f"Failed to load {secret_file}: {e}")
            continue
        
        if secret_value:
            os.environ[env_var] = secret_value
            loaded[env_var] = secret_value
            logger.info(f"Loaded {env_var} from {filename}")
        else:
            logger.warning(f"{secret_file} is empty")
    
    return loaded


def check_secrets() -> Dict[str, bool]:
    """Which provider keys are present in the environment."""
    return {env_var: bool(os.environ.get(env_var)) for env_var in SECRET_FILES.values()}

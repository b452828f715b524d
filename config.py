"""Configuration loader with environment variable support."""
import os
import re
from typing import Any, Dict, Optional
from pathlib import Path
import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from exchange.rpc_rotation import parse_rpc_urls


class Settings(BaseSettings):
    """Environment overrides (also read from .env)."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    log_level: Optional[str] = None
    solana_rpc_urls: Optional[str] = None
    jupiter_api_url: Optional[str] = None
    jupiter_api_key: Optional[str] = None
    sweep_target_mint: Optional[str] = None


def _expand_env_vars(value: Any) -> Any:
    """Recursively expand environment variables in config values."""
    if isinstance(value, str):
        # Replace ${VAR_NAME} with environment variable value
        pattern = r'\$\{([^}]+)\}'
        matches = re.findall(pattern, value)
        for var_name in matches:
            env_value = os.getenv(var_name, '')
            value = value.replace(f'${{{var_name}}}', env_value)
        return value
    elif isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_expand_env_vars(item) for item in value]
    return value


def load_config(config_path: str = "config.yaml", settings: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file with environment variable expansion.

    Args:
        config_path: Path to config.yaml file
        settings: Environment overrides (read from the process when omitted)

    Returns:
        Configuration dictionary; `solana.rpc_urls` is always a list
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, 'r') as f:
        config = yaml.safe_load(f) or {}

    # Expand environment variables
    config = _expand_env_vars(config)

    # Apply environment variable overrides
    settings = settings or Settings()
    if settings.log_level:
        config.setdefault("logging", {})["level"] = settings.log_level

    if settings.solana_rpc_urls:
        config.setdefault("solana", {})["rpc_urls"] = settings.solana_rpc_urls

    if settings.jupiter_api_url:
        config.setdefault("jupiter", {})["api_url"] = settings.jupiter_api_url

    if settings.jupiter_api_key:
        config.setdefault("jupiter", {})["api_key"] = settings.jupiter_api_key

    if settings.sweep_target_mint:
        config.setdefault("sweep", {})["target_mint"] = settings.sweep_target_mint

    solana = config.setdefault("solana", {})
    solana["rpc_urls"] = parse_rpc_urls(solana.get("rpc_urls"))

    return config

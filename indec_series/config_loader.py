"""Configuration loader for the INDEC series ingestion pipeline."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default locations.

    Returns:
        Dictionary with configuration values.
    """
    # Load environment variables first
    load_dotenv()

    if config_path is None:
        locations = [
            "config.yaml",
            "config.yml",
            "../config.yaml",
            "../config.yml",
            str(Path.home() / ".indec_series" / "config.yaml"),
        ]
        for loc in locations:
            if Path(loc).exists():
                config_path = loc
                break

    if config_path is None or not Path(config_path).exists():
        raise FileNotFoundError("Configuration file not found. Please provide config.yaml")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError(f"Invalid configuration root in {config_path}: expected a mapping")

    return _substitute_env_vars(config)


def _substitute_env_vars(obj: Any) -> Any:
    """Recursively substitute environment variables in config.

    Supports syntax: ${VAR_NAME} or ${VAR_NAME:default_value}
    """
    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return _substitute_env_string(obj)
    else:
        return obj


def _substitute_env_string(value: str) -> str:
    def replace(match):
        var_expr = match.group(1)
        if ":" in var_expr:
            var_name, default = var_expr.split(":", 1)
            return os.getenv(var_name, default)
        return os.getenv(var_expr, match.group(0))

    return ENV_PATTERN.sub(replace, value)


def get_indicator_config(config: Dict[str, Any], indicator: str) -> Dict[str, Any]:
    """Get the configuration block of one indicator (emae, ipc, labor_market, poverty)."""
    return (config.get("indicators", {}) or {}).get(indicator, {}) or {}


def get_download_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get download configuration."""
    return config.get("download", {}) or {}


def get_storage_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get storage configuration."""
    return config.get("storage", {}) or {}


def get_seasonal_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get seasonal adjustment defaults."""
    return config.get("seasonal", {}) or {}


def ensure_directories(config: Dict[str, Any]):
    """Ensure all required directories exist."""
    storage = get_storage_config(config)

    sqlite_path = storage.get("sqlite", {}).get("database_path", "data/indec.db")
    Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    raw_dir = storage.get("raw_dir", "data/raw")
    if raw_dir:
        Path(raw_dir).mkdir(parents=True, exist_ok=True)

    log_path = config.get("logging", {}).get("file", "data/logs/indec.log")
    Path(log_path).parent.mkdir(parents=True, exist_ok=True)

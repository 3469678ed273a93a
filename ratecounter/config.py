import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so env vars are available for YAML interpolation
load_dotenv(Path.cwd() / ".env")

# Pattern to match $VAR_NAME environment variable references
ENV_VAR_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")

DEFAULT_CONFIG_FILE = "ratecounter.yaml"

_config_path_override: Path | None = None


def interpolate_env_vars(value):
    """Recursively replace $VAR_NAME with os.environ values."""
    if isinstance(value, str):

        def replace(match):
            var = match.group(1)
            val = os.environ.get(var)
            if val is None:
                raise ValueError(f"Environment variable ${var} not set")
            return val

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def set_config_path(path: Path | str | None) -> None:
    """Override the YAML config location (used by the ``-f`` CLI option)."""
    global _config_path_override
    _config_path_override = Path(path) if path is not None else None
    clear_settings_cache()


def get_config_path() -> Path:
    if _config_path_override is not None:
        return _config_path_override
    return Path.cwd() / DEFAULT_CONFIG_FILE


def load_app_config() -> dict:
    """Load and parse the YAML config with environment variable interpolation."""
    config_path = get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(f"{config_path.name} not found at {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError(f"{config_path} must contain a mapping")

    return interpolate_env_vars(config)


class LogfireConfig(BaseModel):
    """Optional tracing through Pydantic Logfire."""

    enabled: bool = False
    service_name: str = "ratecounter"
    environment: str | None = None
    console: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RATECOUNTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application
    debug: bool = False
    log_level: Literal["debug", "info", "warning", "error"] = "info"

    # HTTP listener
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=0, le=65535)
    route: str = "/counter"

    # Window accounting
    window_seconds: int = Field(default=60, ge=1)
    strategy: Literal["ring", "sparse"] = "sparse"
    flush_interval: float = Field(default=0.01, gt=0)

    # Persistence
    persist: bool = True
    output_file: Path = Path("counter.json")
    snapshot_interval: float = Field(default=30.0, ge=0)

    logfire: LogfireConfig = LogfireConfig()


@lru_cache
def get_settings() -> Settings:
    """Load settings from the environment, .env and the YAML config file."""
    try:
        app_config = load_app_config()
    except FileNotFoundError:
        return Settings()

    return Settings(**app_config)


def clear_settings_cache() -> None:
    get_settings.cache_clear()

"""
Runner configuration: $key substitution config, seeding environment and runtime settings.
"""

import os
from typing import Any, Dict, Literal, Optional

import yaml
from dotenv import dotenv_values
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def load_config(path: Optional[str]) -> Dict[str, Any]:
    """Load simple key->value YAML config used for $key substitution."""
    if not path:
        return {}
    try:
        with open(path, "rt", encoding="utf-8") as fh:
            cfg = yaml.safe_load(fh) or {}
        if not isinstance(cfg, dict):
            raise ValueError("config file must be a mapping of key -> value")
        return cfg
    except Exception as e:
        raise ValueError(f"Failed to load config '{path}': {e}")


def load_env(env_file: Optional[str] = None) -> Dict[str, str]:
    """
    Environment used to seed the run state.
    Values from env_file (dotenv format) take precedence over os.environ.
    """
    env = dict(os.environ)
    if env_file:
        if not os.path.isfile(env_file):
            raise ValueError(f"env file not found: {env_file}")
        for key, value in dotenv_values(env_file).items():
            if value is not None:
                env[key] = value
    return env


class Settings(BaseSettings):
    """Runner settings loaded from PAYTEST_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PAYTEST_",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["console", "json"] = Field(default="console", description="console or json log output")
    timeout: float = Field(default=30, gt=0, description="Request timeout in seconds")
    state_file: Optional[str] = Field(default=None, description="JSON file the run state is seeded from and flushed to")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("log_format", mode="before")
    @classmethod
    def _lower_format(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    @field_validator("state_file", mode="before")
    @classmethod
    def _empty_state_file(cls, v: Any) -> Any:
        return v or None

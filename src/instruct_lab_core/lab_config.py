"""
Instruct-Lab Configuration

Manages loading from environment variables and default values.
"""

import os
from dataclasses import dataclass, field, asdict

from instruct_lab_core.domain.constants import (
    DEFAULT_JUDGE_MODEL,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    JUDGE_MAX_TOKENS,
    JUDGE_TEMPERATURE,
    MAX_STORAGE_BYTES,
    OPENROUTER_BASE_URL,
    SESSION_TTL_SECONDS,
)


def _env_int(key: str, default: int) -> int:
    """Convert an environment variable to int"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to an integer.")


def _env_float(key: str, default: float) -> float:
    """Convert an environment variable to float"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to a number.")


def _env_str(key: str, default: str) -> str:
    """Get an environment variable as a string"""
    return os.environ.get(key, default)


@dataclass
class SessionConfig:
    """Session lifecycle configuration (read once at session initialization)"""
    ttl_seconds: int = SESSION_TTL_SECONDS
    max_storage_bytes: int = MAX_STORAGE_BYTES


@dataclass
class OpenRouterConfig:
    """OpenRouter (OpenAI-compatible API) configuration"""
    base_url: str = OPENROUTER_BASE_URL
    timeout_seconds: int = 30
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    app_title: str = "Instruct-Lab"


@dataclass
class EvaluationConfig:
    """Primary and judge call configuration"""
    judge_model: str = DEFAULT_JUDGE_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    judge_temperature: float = JUDGE_TEMPERATURE
    judge_max_tokens: int = JUDGE_MAX_TOKENS
    judge_parse_retries: int = 1


@dataclass
class CatalogConfig:
    """Model catalog cache configuration"""
    cache_ttl_seconds: int = 3600


@dataclass
class LabConfig:
    """Overall configuration"""
    session: SessionConfig = field(default_factory=SessionConfig)
    openrouter: OpenRouterConfig = field(default_factory=OpenRouterConfig)
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)

    def to_dict(self) -> dict:
        """Convert to dictionary format"""
        return {"lab_config": asdict(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "LabConfig":
        """Create from dictionary (handles presence/absence of lab_config key)"""
        config_data = data.get("lab_config", data)
        return cls(
            session=SessionConfig(**config_data.get("session", {})),
            openrouter=OpenRouterConfig(**config_data.get("openrouter", {})),
            evaluation=EvaluationConfig(**config_data.get("evaluation", {})),
            catalog=CatalogConfig(**config_data.get("catalog", {})),
        )


def load_config() -> LabConfig:
    """
    Load configuration from environment variables

    Uses default values when environment variables are not set.

    Returns:
        LabConfig
    """
    session = SessionConfig(
        ttl_seconds=_env_int("INSTRUCT_LAB_SESSION_TTL_SECONDS", SESSION_TTL_SECONDS),
        max_storage_bytes=_env_int("INSTRUCT_LAB_MAX_STORAGE_BYTES", MAX_STORAGE_BYTES),
    )
    openrouter = OpenRouterConfig(
        base_url=_env_str("OPENROUTER_BASE_URL", OPENROUTER_BASE_URL),
        timeout_seconds=_env_int("OPENROUTER_TIMEOUT_SECONDS", 30),
        max_retries=_env_int("OPENROUTER_MAX_RETRIES", 3),
        retry_delay_seconds=_env_float("OPENROUTER_RETRY_DELAY_SECONDS", 1.0),
        app_title=_env_str("OPENROUTER_APP_TITLE", "Instruct-Lab"),
    )
    evaluation = EvaluationConfig(
        judge_model=_env_str("INSTRUCT_LAB_JUDGE_MODEL", DEFAULT_JUDGE_MODEL),
        temperature=_env_float("INSTRUCT_LAB_TEMPERATURE", DEFAULT_TEMPERATURE),
        max_tokens=_env_int("INSTRUCT_LAB_MAX_TOKENS", DEFAULT_MAX_TOKENS),
        judge_temperature=_env_float("INSTRUCT_LAB_JUDGE_TEMPERATURE", JUDGE_TEMPERATURE),
        judge_max_tokens=_env_int("INSTRUCT_LAB_JUDGE_MAX_TOKENS", JUDGE_MAX_TOKENS),
        judge_parse_retries=_env_int("INSTRUCT_LAB_JUDGE_PARSE_RETRIES", 1),
    )
    catalog = CatalogConfig(
        cache_ttl_seconds=_env_int("INSTRUCT_LAB_MODEL_CACHE_TTL_SECONDS", 3600),
    )
    return LabConfig(
        session=session,
        openrouter=openrouter,
        evaluation=evaluation,
        catalog=catalog,
    )


def validate_config(config: LabConfig) -> list[str]:
    """
    Check a configuration for values the session and clients cannot work with.

    Returns:
        List of error messages (empty when the configuration is valid)
    """
    errors: list[str] = []
    if not config.openrouter.base_url:
        errors.append("OPENROUTER_BASE_URL is required")
    if config.session.ttl_seconds <= 0:
        errors.append("INSTRUCT_LAB_SESSION_TTL_SECONDS must be a positive number")
    if config.session.max_storage_bytes <= 0:
        errors.append("INSTRUCT_LAB_MAX_STORAGE_BYTES must be a positive number")
    if config.openrouter.max_retries < 1:
        errors.append("OPENROUTER_MAX_RETRIES must be at least 1")
    if config.openrouter.timeout_seconds <= 0:
        errors.append("OPENROUTER_TIMEOUT_SECONDS must be a positive number")
    return errors

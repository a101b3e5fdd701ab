"""
Model client factory

Creates a client instance bound to the user's API key.
"""

from __future__ import annotations

from instruct_lab_core.lab_config import LabConfig, load_config
from instruct_lab_core.infrastructure.model_clients.base import ModelClient
from instruct_lab_core.infrastructure.model_clients.openrouter import OpenRouterClient


def create_client(api_key: str, config: LabConfig | None = None) -> ModelClient:
    """
    Create a chat client for the given API key

    Args:
        api_key: Decrypted OpenRouter API key
        config: LabConfig (loads from env if not provided)

    Returns:
        ModelClient: The client instance
    """
    if config is None:
        config = load_config()

    openrouter = config.openrouter
    return OpenRouterClient(
        api_key,
        base_url=openrouter.base_url,
        timeout_seconds=openrouter.timeout_seconds,
        max_retries=openrouter.max_retries,
        retry_delay_seconds=openrouter.retry_delay_seconds,
        app_title=openrouter.app_title,
    )

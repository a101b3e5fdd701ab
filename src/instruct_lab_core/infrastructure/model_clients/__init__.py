"""
Model client package

Provides a unified interface to the chat completion provider.
"""

from instruct_lab_core.infrastructure.model_clients.base import ModelClient
from instruct_lab_core.infrastructure.model_clients.factory import create_client
from instruct_lab_core.domain.value_objects import ModelResponse

__all__ = ["ModelClient", "ModelResponse", "create_client"]

"""
Model Catalog

Fetches the OpenRouter model list, converts entries into Model values, and caches them.
"""

import logging
import time
from typing import Any, Callable

from instruct_lab_core.domain.constants import DEFAULT_CONTEXT_LENGTH
from instruct_lab_core.domain.value_objects import Model, ModelPricing
from instruct_lab_core.infrastructure.openrouter_api import OpenRouterAPI

logger = logging.getLogger(__name__)


def _to_price(value: Any) -> float:
    """Parse a per-token price (OpenRouter sends strings); anything unusable becomes 0"""
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    return price if price >= 0 else 0.0


def provider_from_id(model_id: str) -> str:
    """'anthropic/claude-3-haiku' -> 'Anthropic'"""
    if "/" not in model_id:
        return "Unknown"
    prefix = model_id.split("/", 1)[0]
    return prefix.capitalize() if prefix else "Unknown"


def model_from_entry(entry: dict[str, Any]) -> Model | None:
    """
    Convert one /models entry into a Model.

    Returns:
        Model, or None when the entry has no id or name
    """
    model_id = entry.get("id")
    name = entry.get("name")
    if not model_id or not name:
        return None

    pricing = entry.get("pricing") or {}
    context_length = entry.get("context_length")
    try:
        context_length = int(context_length) if context_length else DEFAULT_CONTEXT_LENGTH
    except (TypeError, ValueError):
        context_length = DEFAULT_CONTEXT_LENGTH

    return Model(
        id=model_id,
        name=name,
        provider=provider_from_id(model_id),
        context_length=context_length,
        pricing=ModelPricing(
            prompt_per_token=_to_price(pricing.get("prompt")),
            completion_per_token=_to_price(pricing.get("completion")),
        ),
        description=entry.get("description") or None,
    )


class ModelCatalog:
    """Cached list of models available to an API key"""

    def __init__(
        self,
        api: OpenRouterAPI,
        cache_ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api = api
        self.cache_ttl_seconds = cache_ttl_seconds
        self._clock = clock
        self._models: list[Model] | None = None
        self._fetched_at = 0.0

    async def list_models(self, api_key: str, *, refresh: bool = False) -> list[Model]:
        """
        Return all models sorted by name, fetching when the cache is empty or stale.

        Raises:
            CredentialError: The key was rejected
            NetworkError: The provider could not be reached
            LabError: Malformed response
        """
        if not refresh and self._models is not None and self._clock() - self._fetched_at < self.cache_ttl_seconds:
            return list(self._models)

        entries = await self.api.list_models(api_key)
        models = [m for m in (model_from_entry(e) for e in entries if isinstance(e, dict)) if m is not None]
        dropped = len(entries) - len(models)
        if dropped:
            logger.debug("Dropped %d model entries without id or name", dropped)
        models.sort(key=lambda m: m.name)

        self._models = models
        self._fetched_at = self._clock()
        logger.info("Loaded %d models", len(models))
        return list(models)

    async def search(self, api_key: str, query: str) -> list[Model]:
        """Case-insensitive match on name, provider, description, or id; empty query returns everything"""
        models = await self.list_models(api_key)
        needle = query.strip().lower()
        if not needle:
            return models
        return [
            m for m in models
            if needle in m.name.lower()
            or needle in m.provider.lower()
            or needle in m.id.lower()
            or (m.description is not None and needle in m.description.lower())
        ]

    async def get(self, api_key: str, model_id: str) -> Model | None:
        for model in await self.list_models(api_key):
            if model.id == model_id:
                return model
        return None

    def invalidate(self) -> None:
        self._models = None
        self._fetched_at = 0.0

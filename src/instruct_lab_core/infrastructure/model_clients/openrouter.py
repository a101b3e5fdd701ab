"""
OpenRouter (OpenAI-compatible API) model client
"""

import logging
import time

import openai
from openai import AsyncOpenAI

from instruct_lab_core.domain.constants import OPENROUTER_BASE_URL
from instruct_lab_core.domain.errors import CredentialError, LabError, NetworkError
from instruct_lab_core.domain.value_objects import ModelResponse
from instruct_lab_core.infrastructure.model_clients.base import ModelClient, RetryMixin

logger = logging.getLogger(__name__)

# Status codes worth another attempt
_RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}


class OpenRouterClient(RetryMixin, ModelClient):
    """Client using OpenRouter's chat completions endpoint through the OpenAI SDK"""

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout_seconds: int = 30,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        app_title: str = "Instruct-Lab",
    ):
        """
        Args:
            api_key: OpenRouter API key supplied by the user
            base_url: API endpoint (default: https://openrouter.ai/api/v1)
            timeout_seconds: Per-call timeout in seconds (default: 30)
            max_retries: Maximum number of attempts (default: 3)
            retry_delay_seconds: Base delay for exponential backoff (default: 1.0)
            app_title: Application name sent in the X-Title header
        """
        if not api_key:
            raise CredentialError("OpenRouter API key is not set")

        self.base_url = base_url or OPENROUTER_BASE_URL
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds

        # Retries are handled by RetryMixin so errors can be classified first
        self.client = AsyncOpenAI(
            base_url=self.base_url,
            api_key=api_key,
            timeout=timeout_seconds,
            max_retries=0,
            default_headers={"X-Title": app_title},
        )

    async def chat(
        self,
        model_id: str,
        system: str,
        user: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ModelResponse:
        """
        Send a system + user message pair and retrieve the response

        Args:
            model_id: OpenRouter model id (e.g. openai/gpt-4)
            system: System message
            user: User message
            temperature: Sampling temperature (provider default if None)
            max_tokens: Completion token limit (provider default if None)

        Returns:
            ModelResponse: The model's response

        Raises:
            CredentialError: If the key is rejected (never retried)
            NetworkError: If the maximum number of retries is exceeded
        """
        request: dict = {
            "model": model_id,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        if temperature is not None:
            request["temperature"] = temperature
        if max_tokens is not None:
            request["max_tokens"] = max_tokens

        async def _call():
            start_time = time.monotonic()
            try:
                response = await self.client.chat.completions.create(**request)
            except openai.APIError as e:
                raise classify_openai_error(e, model_id) from e
            end_time = time.monotonic()

            latency_ms = int((end_time - start_time) * 1000)
            if not response.choices:
                raise LabError(
                    "No response choices received",
                    context={"model": model_id},
                )
            output = (response.choices[0].message.content or "").strip()

            # Retrieve token usage
            input_tokens = 0
            output_tokens = 0
            if response.usage:
                input_tokens = response.usage.prompt_tokens or 0
                output_tokens = response.usage.completion_tokens or 0

            return ModelResponse(
                output=output,
                latency_ms=latency_ms,
                model_name=model_id,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            )

        return await self._with_retry(_call, retryable_exceptions=(NetworkError,))


def classify_openai_error(error: openai.APIError, model_id: str) -> LabError:
    """Map an OpenAI SDK exception onto the domain error taxonomy"""
    context = {"model": model_id}

    if isinstance(error, openai.APITimeoutError):
        return NetworkError("Request timed out. Please try again.", context=context)
    if isinstance(error, openai.APIConnectionError):
        return NetworkError(
            "Network connection failed. Please check your internet connection.",
            context=context,
        )
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return CredentialError(
            "Invalid API key. Please check your OpenRouter API key.",
            context={**context, "status_code": error.status_code},
        )
    if isinstance(error, openai.APIStatusError):
        status = error.status_code
        if status in _RETRYABLE_STATUS:
            logger.warning("OpenRouter returned %s for %s", status, model_id)
            return NetworkError(
                f"Server error occurred ({status}). Please try again.",
                status_code=status,
                context=context,
            )
        return LabError(f"API error ({status}): {error.message}", context={**context, "status_code": status})
    return LabError(f"API error: {error}", context=context)

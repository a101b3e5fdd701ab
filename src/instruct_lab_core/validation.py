"""
Input Validation

Length checks for instructions and prompts, API key format checks,
and request parameter checks applied before any network call.
"""

import re
from dataclasses import dataclass

from instruct_lab_core.domain.constants import (
    API_KEY_MIN_LENGTH,
    INSTRUCTIONS_MAX_LENGTH,
    INSTRUCTIONS_MIN_LENGTH,
    PROMPT_MAX_LENGTH,
    PROMPT_MIN_LENGTH,
)
from instruct_lab_core.domain.errors import ValidationError

_OPENROUTER_KEY_RE = re.compile(r"^sk-or-[A-Za-z0-9+/=_-]+$")
_GENERIC_KEY_RE = re.compile(r"^[A-Za-z0-9+/=_-]{20,}$")


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a text length check"""
    is_valid: bool
    status: str  # neutral / warning / error / success
    message: str
    characters_remaining: int


def validate_text(value: str, min_length: int, max_length: int, required: bool = True) -> ValidationResult:
    """
    Validate text input against length constraints

    The minimum is checked against the trimmed length, the maximum against the raw length.
    """
    length = len(value)
    trimmed_length = len(value.strip())

    if required and trimmed_length == 0:
        return ValidationResult(
            is_valid=False,
            status="neutral",
            message=f"Enter text ({min_length}-{max_length} characters)",
            characters_remaining=max_length,
        )
    if trimmed_length < min_length:
        return ValidationResult(
            is_valid=False,
            status="warning",
            message=f"{min_length - trimmed_length} more characters needed",
            characters_remaining=max_length - length,
        )
    if length > max_length:
        return ValidationResult(
            is_valid=False,
            status="error",
            message=f"{length - max_length} characters over limit",
            characters_remaining=max_length - length,
        )
    return ValidationResult(
        is_valid=True,
        status="success",
        message=f"{max_length - length} characters remaining",
        characters_remaining=max_length - length,
    )


def validate_instructions(instructions: str) -> ValidationResult:
    return validate_text(instructions, INSTRUCTIONS_MIN_LENGTH, INSTRUCTIONS_MAX_LENGTH)


def validate_prompt(prompt: str) -> ValidationResult:
    return validate_text(prompt, PROMPT_MIN_LENGTH, PROMPT_MAX_LENGTH)


def is_valid_api_key_format(api_key: str) -> bool:
    """OpenRouter keys look like sk-or-...; other long token-like keys are accepted too."""
    if not api_key or not isinstance(api_key, str):
        return False
    key = api_key.strip()
    if len(key) < API_KEY_MIN_LENGTH:
        return False
    return bool(_OPENROUTER_KEY_RE.match(key) or _GENERIC_KEY_RE.match(key))


def ensure_evaluation_inputs(
    instructions: str,
    prompt: str,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> None:
    """
    Raise ValidationError if the evaluation inputs cannot be sent

    Raises:
        ValidationError: On the first failing check
    """
    result = validate_instructions(instructions)
    if not result.is_valid:
        raise ValidationError(f"Invalid instructions: {result.message}", context={"field": "instructions"})
    result = validate_prompt(prompt)
    if not result.is_valid:
        raise ValidationError(f"Invalid prompt: {result.message}", context={"field": "prompt"})
    if temperature is not None and not 0 <= temperature <= 2:
        raise ValidationError("Temperature must be between 0 and 2", context={"field": "temperature"})
    if max_tokens is not None and max_tokens < 1:
        raise ValidationError("Max tokens must be at least 1", context={"field": "max_tokens"})

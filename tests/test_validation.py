"""Tests for input validation"""

import pytest

from instruct_lab_core.domain.errors import ValidationError
from instruct_lab_core.validation import (
    ensure_evaluation_inputs,
    is_valid_api_key_format,
    validate_instructions,
    validate_prompt,
    validate_text,
)


class TestValidateText:
    def test_empty_is_neutral(self):
        result = validate_text("   ", 5, 20)
        assert not result.is_valid
        assert result.status == "neutral"
        assert result.characters_remaining == 20

    def test_too_short_is_warning(self):
        result = validate_text("abc", 5, 20)
        assert not result.is_valid
        assert result.status == "warning"
        assert result.message == "2 more characters needed"

    def test_too_long_is_error(self):
        result = validate_text("x" * 25, 5, 20)
        assert not result.is_valid
        assert result.status == "error"
        assert result.characters_remaining == -5

    def test_valid(self):
        result = validate_text("hello world", 5, 20)
        assert result.is_valid
        assert result.status == "success"
        assert result.characters_remaining == 9


class TestInstructionsAndPrompt:
    def test_instruction_bounds(self):
        assert not validate_instructions("x" * 9).is_valid
        assert validate_instructions("x" * 10).is_valid
        assert validate_instructions("x" * 4000).is_valid
        assert not validate_instructions("x" * 4001).is_valid

    def test_prompt_bounds(self):
        assert not validate_prompt("abcd").is_valid
        assert validate_prompt("abcde").is_valid
        assert validate_prompt("x" * 2000).is_valid
        assert not validate_prompt("x" * 2001).is_valid

    def test_whitespace_does_not_count_toward_minimum(self):
        assert not validate_instructions("  abc     ").is_valid


class TestApiKeyFormat:
    @pytest.mark.parametrize("key", [
        "sk-or-v1-0123456789abcdef0123456789abcdef",
        "  sk-or-v1-0123456789abcdef0123  ",
        "ABCDEFGHIJKLMNOPQRSTUVWXYZ012345",
    ])
    def test_valid(self, key):
        assert is_valid_api_key_format(key)

    @pytest.mark.parametrize("key", [
        "",
        "sk-or-short",
        "sk-or-v1-has a space in the middle here",
        "ABCDEFGHIJKLMNOPQRS",
        None,
    ])
    def test_invalid(self, key):
        assert not is_valid_api_key_format(key)


class TestEnsureEvaluationInputs:
    def test_valid_inputs(self):
        ensure_evaluation_inputs("Be concise always.", "Hello there", temperature=0.0, max_tokens=1)
        ensure_evaluation_inputs("Be concise always.", "Hello there", temperature=2.0)

    @pytest.mark.parametrize("kwargs,field", [
        ({"instructions": "short", "prompt": "Hello there"}, "instructions"),
        ({"instructions": "Be concise always.", "prompt": "hi"}, "prompt"),
        ({"instructions": "Be concise always.", "prompt": "Hello there", "temperature": -0.1}, "temperature"),
        ({"instructions": "Be concise always.", "prompt": "Hello there", "max_tokens": 0}, "max_tokens"),
    ])
    def test_invalid_inputs(self, kwargs, field):
        with pytest.raises(ValidationError) as exc_info:
            ensure_evaluation_inputs(**kwargs)
        assert exc_info.value.context["field"] == field

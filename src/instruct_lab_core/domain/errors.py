"""
Domain Errors

Error taxonomy shared by the evaluation engine, model clients, and session store.
"""

from typing import Any


class LabError(Exception):
    """Base exception for the instruct-lab core"""

    retryable: bool = False

    def __init__(self, message: str, *, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = dict(context or {})


class CredentialError(LabError):
    """API key is malformed or was rejected by the provider"""


class NetworkError(LabError):
    """Transport failure, timeout, rate limit, or provider-side error"""

    retryable = True

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        self.status_code = status_code


class JudgeParseError(LabError):
    """Judge response did not contain a well-formed verdict"""

    retryable = True

    def __init__(self, message: str, raw_text: str = "", *, context: dict[str, Any] | None = None):
        super().__init__(message, context=context)
        self.raw_text = raw_text


class ConcurrencyRejection(LabError):
    """An evaluation is already in flight for this session"""


class ValidationError(LabError):
    """Instructions, prompt, or request parameters failed validation"""


class StorageError(LabError):
    """Session storage bound exceeded or stored payload unreadable"""


class SessionExpiredError(LabError):
    """Session TTL elapsed; the session has been torn down"""

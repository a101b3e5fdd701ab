"""
Domain Layer

Defines constants, entities, value objects, and errors that form the core of the business logic.
Has no dependencies on external libraries.
"""

from instruct_lab_core.domain.constants import (
    DEFAULT_JUDGE_MODEL,
    SCORE_WEIGHTS,
)
from instruct_lab_core.domain.entities import (
    CurrentTest,
    TestRun,
    TestStatus,
)
from instruct_lab_core.domain.errors import (
    ConcurrencyRejection,
    CredentialError,
    JudgeParseError,
    LabError,
    NetworkError,
    SessionExpiredError,
    StorageError,
    ValidationError,
)
from instruct_lab_core.domain.value_objects import (
    CostBreakdown,
    Model,
    ModelPricing,
    ModelResponse,
    SuccessMetrics,
    TokenUsage,
)

__all__ = [
    # constants
    "DEFAULT_JUDGE_MODEL",
    "SCORE_WEIGHTS",
    # entities
    "CurrentTest",
    "TestRun",
    "TestStatus",
    # errors
    "ConcurrencyRejection",
    "CredentialError",
    "JudgeParseError",
    "LabError",
    "NetworkError",
    "SessionExpiredError",
    "StorageError",
    "ValidationError",
    # value objects
    "CostBreakdown",
    "Model",
    "ModelPricing",
    "ModelResponse",
    "SuccessMetrics",
    "TokenUsage",
]

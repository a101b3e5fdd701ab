"""
Domain Value Objects

Defines immutable data structures representing values such as model metadata,
token usage, success metrics, model responses, and cost breakdowns.
"""

from dataclasses import dataclass, field

from instruct_lab_core.domain.constants import SCORE_MAX, SCORE_MIN, SCORE_WEIGHTS


@dataclass(frozen=True)
class ModelPricing:
    """Model pricing (USD per token)"""
    prompt_per_token: float = 0.0
    completion_per_token: float = 0.0

    def __post_init__(self):
        if self.prompt_per_token < 0:
            raise ValueError("prompt_per_token must be non-negative")
        if self.completion_per_token < 0:
            raise ValueError("completion_per_token must be non-negative")


@dataclass(frozen=True)
class Model:
    """Snapshot of a catalog entry"""
    id: str
    name: str
    provider: str
    context_length: int
    pricing: ModelPricing = field(default_factory=ModelPricing)
    description: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Model":
        return cls(
            id=data["id"],
            name=data["name"],
            provider=data["provider"],
            context_length=int(data["context_length"]),
            pricing=ModelPricing(**data.get("pricing", {})),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported for a single call (or a sum of calls)"""
    prompt_tokens: int = 0
    completion_tokens: int = 0

    def __post_init__(self):
        if self.prompt_tokens < 0:
            raise ValueError("prompt_tokens must be non-negative")
        if self.completion_tokens < 0:
            raise ValueError("completion_tokens must be non-negative")

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TokenUsage":
        return cls(
            prompt_tokens=int(data.get("prompt_tokens", 0)),
            completion_tokens=int(data.get("completion_tokens", 0)),
        )


@dataclass(frozen=True)
class SuccessMetrics:
    """
    Judge verdict with the derived overall score

    overall_score is computed from the sub-scores and SCORE_WEIGHTS; it cannot be set.
    """
    coherence_score: float
    task_completion_score: float
    instruction_adherence_score: float
    efficiency_score: float
    explanation: str = ""
    parse_failed: bool = False

    def __post_init__(self):
        for name in (
            "coherence_score",
            "task_completion_score",
            "instruction_adherence_score",
            "efficiency_score",
        ):
            value = getattr(self, name)
            if not SCORE_MIN <= value <= SCORE_MAX:
                raise ValueError(f"{name} must be between {SCORE_MIN:g} and {SCORE_MAX:g}, got {value}")

    @property
    def overall_score(self) -> float:
        return (
            SCORE_WEIGHTS["coherence"] * self.coherence_score
            + SCORE_WEIGHTS["task_completion"] * self.task_completion_score
            + SCORE_WEIGHTS["instruction_adherence"] * self.instruction_adherence_score
            + SCORE_WEIGHTS["efficiency"] * self.efficiency_score
        )

    @classmethod
    def degraded(cls, explanation: str) -> "SuccessMetrics":
        """Zeroed metrics used when the judge verdict could not be parsed"""
        return cls(
            coherence_score=0.0,
            task_completion_score=0.0,
            instruction_adherence_score=0.0,
            efficiency_score=0.0,
            explanation=explanation,
            parse_failed=True,
        )

    def to_dict(self) -> dict:
        return {
            "overall_score": self.overall_score,
            "coherence_score": self.coherence_score,
            "task_completion_score": self.task_completion_score,
            "instruction_adherence_score": self.instruction_adherence_score,
            "efficiency_score": self.efficiency_score,
            "explanation": self.explanation,
            "parse_failed": self.parse_failed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SuccessMetrics":
        # overall_score is derived, so a stored value is ignored
        return cls(
            coherence_score=float(data["coherence_score"]),
            task_completion_score=float(data["task_completion_score"]),
            instruction_adherence_score=float(data["instruction_adherence_score"]),
            efficiency_score=float(data["efficiency_score"]),
            explanation=data.get("explanation", ""),
            parse_failed=bool(data.get("parse_failed", False)),
        )


@dataclass(frozen=True)
class ModelResponse:
    """Model response"""
    output: str
    latency_ms: int
    model_name: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def token_usage(self) -> TokenUsage:
        return TokenUsage(prompt_tokens=self.input_tokens, completion_tokens=self.output_tokens)


@dataclass(frozen=True)
class CostBreakdown:
    """Cost of one evaluation, split by call (USD)"""
    primary: float = 0.0
    evaluation: float = 0.0

    @property
    def total(self) -> float:
        return self.primary + self.evaluation

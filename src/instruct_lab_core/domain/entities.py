"""
Domain Entities

Defines the in-progress test state and the immutable record of a completed evaluation.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum

from instruct_lab_core.domain.value_objects import (
    CostBreakdown,
    Model,
    SuccessMetrics,
    TokenUsage,
)


class TestStatus(str, Enum):
    """Lifecycle status of the in-progress test"""
    __test__ = False

    IDLE = "idle"
    SETUP = "setup"
    INSTRUCTIONS = "instructions"
    TESTING = "testing"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class CurrentTest:
    """Mutable working state of one in-progress evaluation"""
    __test__ = False

    model: Model | None = None
    instructions: str = ""
    prompt: str = ""
    response: str | None = None
    metrics: SuccessMetrics | None = None
    token_usage: TokenUsage | None = None
    execution_time_ms: int | None = None
    cost: float | None = None
    status: TestStatus = TestStatus.IDLE
    error: str | None = None

    def clear_results(self) -> None:
        """Drop the outcome of a previous run while keeping the inputs"""
        self.response = None
        self.metrics = None
        self.token_usage = None
        self.execution_time_ms = None
        self.cost = None
        self.error = None

    def to_dict(self) -> dict:
        return {
            "model": asdict(self.model) if self.model else None,
            "instructions": self.instructions,
            "prompt": self.prompt,
            "response": self.response,
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "token_usage": self.token_usage.to_dict() if self.token_usage else None,
            "execution_time_ms": self.execution_time_ms,
            "cost": self.cost,
            "status": self.status.value,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CurrentTest":
        return cls(
            model=Model.from_dict(data["model"]) if data.get("model") else None,
            instructions=data.get("instructions", ""),
            prompt=data.get("prompt", ""),
            response=data.get("response"),
            metrics=SuccessMetrics.from_dict(data["metrics"]) if data.get("metrics") else None,
            token_usage=TokenUsage.from_dict(data["token_usage"]) if data.get("token_usage") else None,
            execution_time_ms=data.get("execution_time_ms"),
            cost=data.get("cost"),
            status=TestStatus(data.get("status", TestStatus.IDLE.value)),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class TestRun:
    """Immutable snapshot of a completed evaluation"""
    __test__ = False

    id: str
    timestamp: str
    model: str
    model_id: str
    model_provider: str
    evaluation_model: str
    instructions: str
    prompt: str
    response: str
    metrics: SuccessMetrics
    token_usage: TokenUsage
    execution_time_ms: int
    cost: float
    cost_breakdown: CostBreakdown = field(default_factory=CostBreakdown)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "model": self.model,
            "model_id": self.model_id,
            "model_provider": self.model_provider,
            "evaluation_model": self.evaluation_model,
            "instructions": self.instructions,
            "prompt": self.prompt,
            "response": self.response,
            "metrics": self.metrics.to_dict(),
            "token_usage": self.token_usage.to_dict(),
            "execution_time_ms": self.execution_time_ms,
            "cost": self.cost,
            "cost_breakdown": {
                "primary": self.cost_breakdown.primary,
                "evaluation": self.cost_breakdown.evaluation,
                "total": self.cost_breakdown.total,
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TestRun":
        breakdown = data.get("cost_breakdown") or {}
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            model=data["model"],
            model_id=data.get("model_id", data["model"]),
            model_provider=data["model_provider"],
            evaluation_model=data.get("evaluation_model", ""),
            instructions=data["instructions"],
            prompt=data["prompt"],
            response=data["response"],
            metrics=SuccessMetrics.from_dict(data["metrics"]),
            token_usage=TokenUsage.from_dict(data["token_usage"]),
            execution_time_ms=int(data["execution_time_ms"]),
            cost=float(data["cost"]),
            cost_breakdown=CostBreakdown(
                primary=float(breakdown.get("primary", 0.0)),
                evaluation=float(breakdown.get("evaluation", 0.0)),
            ),
        )

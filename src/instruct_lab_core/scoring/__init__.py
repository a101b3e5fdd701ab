"""
Scoring sub-package

Provides LLM Judge scoring, verdict parsing, and cost calculation.
"""

from instruct_lab_core.domain.value_objects import SuccessMetrics
from instruct_lab_core.scoring.cost_calc import (
    calculate_call_cost,
    calculate_evaluation_cost,
)
from instruct_lab_core.scoring.llm_judge import (
    JudgeOutcome,
    LLMJudge,
    Verdict,
    VerdictOk,
    VerdictParseFailure,
    build_judge_prompt,
    clamp_score,
    parse_verdict,
)

__all__ = [
    # value objects (re-exported from domain)
    "SuccessMetrics",
    # cost
    "calculate_call_cost",
    "calculate_evaluation_cost",
    # llm judge
    "JudgeOutcome",
    "LLMJudge",
    "Verdict",
    "VerdictOk",
    "VerdictParseFailure",
    "build_judge_prompt",
    "clamp_score",
    "parse_verdict",
]

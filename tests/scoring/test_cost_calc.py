"""Tests for cost calculation"""

import pytest

from instruct_lab_core.domain.value_objects import ModelPricing, TokenUsage
from instruct_lab_core.scoring.cost_calc import calculate_call_cost, calculate_evaluation_cost


class TestCalculateCallCost:
    def test_basic(self):
        usage = TokenUsage(prompt_tokens=1000, completion_tokens=500)
        pricing = ModelPricing(prompt_per_token=0.000001, completion_per_token=0.000002)
        assert calculate_call_cost(usage, pricing) == pytest.approx(0.002)

    def test_free_model(self):
        assert calculate_call_cost(TokenUsage(1000, 1000), ModelPricing()) == 0.0

    def test_zero_usage(self):
        pricing = ModelPricing(prompt_per_token=0.01, completion_per_token=0.01)
        assert calculate_call_cost(TokenUsage(), pricing) == 0.0


class TestCalculateEvaluationCost:
    def test_primary_and_judge_tracked_separately(self):
        breakdown = calculate_evaluation_cost(
            TokenUsage(100, 50),
            ModelPricing(prompt_per_token=0.00001, completion_per_token=0.00002),
            TokenUsage(400, 80),
            ModelPricing(prompt_per_token=0.00003, completion_per_token=0.00006),
        )
        assert breakdown.primary == pytest.approx(0.002)
        assert breakdown.evaluation == pytest.approx(0.0168)
        assert breakdown.total == pytest.approx(0.0188)

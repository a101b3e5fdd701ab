"""
Cost Calculation

Computes per-call and per-evaluation cost from token usage and model pricing.
"""

from instruct_lab_core.domain.value_objects import (
    CostBreakdown,
    ModelPricing,
    TokenUsage,
)


def calculate_call_cost(usage: TokenUsage, pricing: ModelPricing) -> float:
    """
    Calculate the cost of a single call

    cost = prompt_tokens * prompt_per_token + completion_tokens * completion_per_token

    Args:
        usage: Token usage reported by the provider
        pricing: Per-token pricing of the model that served the call

    Returns:
        Cost (USD)
    """
    return (
        usage.prompt_tokens * pricing.prompt_per_token
        + usage.completion_tokens * pricing.completion_per_token
    )


def calculate_evaluation_cost(
    primary_usage: TokenUsage,
    primary_pricing: ModelPricing,
    judge_usage: TokenUsage,
    judge_pricing: ModelPricing,
) -> CostBreakdown:
    """
    Calculate the cost of a full evaluation (primary call + judge calls)

    Args:
        primary_usage: Token usage of the primary call
        primary_pricing: Pricing of the primary model
        judge_usage: Summed token usage of every judge attempt
        judge_pricing: Pricing of the judge model

    Returns:
        CostBreakdown with primary, evaluation, and total cost
    """
    return CostBreakdown(
        primary=calculate_call_cost(primary_usage, primary_pricing),
        evaluation=calculate_call_cost(judge_usage, judge_pricing),
    )

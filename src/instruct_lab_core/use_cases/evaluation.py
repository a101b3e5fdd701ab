"""
Evaluation Execution

Runs the dual-model evaluation: primary call, judge call, verdict parsing,
score aggregation, and cost accounting.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Callable

from instruct_lab_core.domain.entities import TestRun
from instruct_lab_core.domain.errors import LabError
from instruct_lab_core.domain.value_objects import Model, SuccessMetrics, TokenUsage
from instruct_lab_core.infrastructure.model_clients.base import ModelClient
from instruct_lab_core.infrastructure.model_clients.factory import create_client
from instruct_lab_core.lab_config import EvaluationConfig, LabConfig, load_config
from instruct_lab_core.scoring.cost_calc import calculate_evaluation_cost
from instruct_lab_core.scoring.llm_judge import LLMJudge, VerdictOk, VerdictParseFailure
from instruct_lab_core.validation import ensure_evaluation_inputs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluationParams:
    """Inputs of a single evaluation"""
    api_key: str
    model: Model
    evaluation_model: Model
    instructions: str
    prompt: str
    temperature: float | None = None
    max_tokens: int | None = None

    def __repr__(self) -> str:
        # keep the key out of logs and tracebacks
        return (
            f"EvaluationParams(model={self.model.id!r}, evaluation_model={self.evaluation_model.id!r}, "
            f"instructions_length={len(self.instructions)}, prompt_length={len(self.prompt)})"
        )


class EvaluationEngine:
    """
    Orchestrates the dual-model evaluation

    1. Execute the primary call with the user's model and instructions
    2. Have the judge model score the response (one retry on an unparseable verdict)
    3. Compute cost and assemble an immutable TestRun

    The engine does not touch session state; the caller decides what to do with the TestRun.
    """

    def __init__(
        self,
        client_factory: Callable[[str], ModelClient] | None = None,
        config: LabConfig | None = None,
    ):
        """
        Args:
            client_factory: Builds a ModelClient from an API key (default: create_client)
            config: LabConfig (loads from env if not provided)
        """
        if config is None:
            config = load_config()
        self.config: EvaluationConfig = config.evaluation
        self._client_factory = client_factory or partial(create_client, config=config)

    async def run(self, params: EvaluationParams) -> TestRun:
        """
        Execute a full evaluation.

        Args:
            params: Evaluation inputs

        Returns:
            TestRun: Completed evaluation record

        Raises:
            ValidationError: Inputs failed validation (no network call made)
            CredentialError: The key was rejected
            NetworkError: A call failed after the client's retries
            LabError: Any other provider error
        """
        ensure_evaluation_inputs(
            params.instructions,
            params.prompt,
            temperature=params.temperature,
            max_tokens=params.max_tokens,
        )

        client = self._client_factory(params.api_key)
        start_time = time.monotonic()

        # Step 1: primary call (failure here ends the run, the judge is never called)
        logger.info("Running primary call on %s", params.model.id)
        try:
            primary = await client.chat(
                params.model.id,
                params.instructions,
                params.prompt,
                temperature=params.temperature if params.temperature is not None else self.config.temperature,
                max_tokens=params.max_tokens if params.max_tokens is not None else self.config.max_tokens,
            )
        except LabError as e:
            e.context.update({"phase": "primary_test", "model": params.model.id})
            raise
        if not primary.output:
            raise LabError(
                "No response generated from the model",
                context={"phase": "primary_test", "model": params.model.id},
            )

        # Step 2: judge call, retried when the verdict cannot be parsed
        metrics, judge_usage = await self._judge(client, params, primary.output)

        execution_time_ms = int((time.monotonic() - start_time) * 1000)
        primary_usage = primary.token_usage
        cost = calculate_evaluation_cost(
            primary_usage,
            params.model.pricing,
            judge_usage,
            params.evaluation_model.pricing,
        )

        logger.info(
            "Evaluation finished: model=%s overall=%.1f parse_failed=%s cost=%.6f",
            params.model.id,
            metrics.overall_score,
            metrics.parse_failed,
            cost.total,
        )

        return TestRun(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc).isoformat(),
            model=params.model.name,
            model_id=params.model.id,
            model_provider=params.model.provider,
            evaluation_model=params.evaluation_model.id,
            instructions=params.instructions,
            prompt=params.prompt,
            response=primary.output,
            metrics=metrics,
            token_usage=primary_usage,
            execution_time_ms=execution_time_ms,
            cost=cost.total,
            cost_breakdown=cost,
        )

    async def _judge(
        self,
        client: ModelClient,
        params: EvaluationParams,
        response: str,
    ) -> tuple[SuccessMetrics, TokenUsage]:
        """Return the verdict metrics (degraded after repeated parse failures) and summed judge usage"""
        judge = LLMJudge(
            client,
            temperature=self.config.judge_temperature,
            max_tokens=self.config.judge_max_tokens,
        )
        judge_usage = TokenUsage()
        attempts = 1 + max(0, self.config.judge_parse_retries)
        failure: VerdictParseFailure | None = None

        for attempt in range(1, attempts + 1):
            logger.info("Running judge call on %s (attempt %d/%d)", params.evaluation_model.id, attempt, attempts)
            try:
                outcome = await judge.judge(
                    params.evaluation_model.id,
                    params.instructions,
                    params.prompt,
                    response,
                )
            except LabError as e:
                e.context.update({"phase": "evaluation", "evaluation_model": params.evaluation_model.id})
                raise
            judge_usage = judge_usage + outcome.response.token_usage

            if isinstance(outcome.verdict, VerdictOk):
                return outcome.verdict.metrics, judge_usage

            failure = outcome.verdict
            logger.warning("Judge verdict could not be parsed (attempt %d/%d): %s", attempt, attempts, failure.reason)

        assert failure is not None
        return (
            SuccessMetrics.degraded(f"Evaluation parsing failed: {failure.reason}"),
            judge_usage,
        )

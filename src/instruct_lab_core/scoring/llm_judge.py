"""
LLM Judge scoring logic

Implements LLMJudge, which uses a separate model (the judge) to score a primary response,
and the verdict parser that turns the judge's text into SuccessMetrics.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from instruct_lab_core.infrastructure.model_clients.base import ModelClient

from instruct_lab_core.domain.constants import (
    JUDGE_MAX_TOKENS,
    JUDGE_TEMPERATURE,
    SCORE_MAX,
    SCORE_MIN,
)
from instruct_lab_core.domain.value_objects import ModelResponse, SuccessMetrics

logger = logging.getLogger(__name__)


JUDGE_SYSTEM_MESSAGE = (
    "You are an expert AI evaluator. Analyze the given response and provide detailed scoring "
    "based on the criteria provided. Return your evaluation in the exact JSON format requested."
)

# Canonical field name -> accepted spellings in the judge's JSON
_SCORE_FIELDS: dict[str, tuple[str, ...]] = {
    "coherence_score": ("coherence_score", "coherenceScore", "coherence"),
    "task_completion_score": ("task_completion_score", "taskCompletionScore", "task_completion"),
    "instruction_adherence_score": (
        "instruction_adherence_score",
        "instructionAdherenceScore",
        "instruction_adherence",
    ),
    "efficiency_score": ("efficiency_score", "efficiencyScore", "efficiency"),
}

_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class VerdictOk:
    """Well-formed verdict"""
    metrics: SuccessMetrics


@dataclass(frozen=True)
class VerdictParseFailure:
    """Judge output that could not be turned into a verdict"""
    raw_text: str
    reason: str


Verdict = Union[VerdictOk, VerdictParseFailure]


@dataclass(frozen=True)
class JudgeOutcome:
    """Parsed verdict together with the judge call's response (for usage and cost)"""
    verdict: Verdict
    response: ModelResponse


def build_judge_prompt(instructions: str, prompt: str, response: str) -> str:
    """Build the fixed evaluation template embedding the three inputs verbatim"""
    parts: list[str] = [
        "Please evaluate the following AI response based on how well it follows the given "
        "system instructions and addresses the user prompt.",
        "",
        f"SYSTEM INSTRUCTIONS:\n{instructions}",
        "",
        f"USER PROMPT:\n{prompt}",
        "",
        f"AI RESPONSE:\n{response}",
        "",
        "Score each criterion with an integer from 0 to 100:",
        "",
        "1. COHERENCE: How logical, clear, and well-structured is the response?",
        "2. TASK COMPLETION: How completely does the response address the user's request?",
        "3. INSTRUCTION ADHERENCE: How well does the response follow the system instructions?",
        "4. EFFICIENCY: How concise and relevant is the response without unnecessary content?",
        "",
        "Also provide a brief explanation of the scoring rationale.",
        "",
        "Return your evaluation in this exact JSON format:",
        "{",
        '  "coherence_score": 90,',
        '  "task_completion_score": 85,',
        '  "instruction_adherence_score": 80,',
        '  "efficiency_score": 85,',
        '  "explanation": "Brief explanation of the scoring rationale and key strengths/weaknesses"',
        "}",
        "",
        "Respond ONLY with the JSON object. All four scores must be integers between 0 and 100.",
    ]
    return "\n".join(parts)


def clamp_score(value: float) -> float:
    """Clamp score to the range 0-100"""
    return max(SCORE_MIN, min(SCORE_MAX, value))


def _extract_json_text(text: str) -> str | None:
    match = _CODE_BLOCK_RE.search(text)
    if match:
        return match.group(1)
    match = _JSON_OBJECT_RE.search(text)
    return match.group(0) if match else None


def _read_score(data: dict, field: str) -> float | str:
    """Return the clamped score, or an error message when it is missing or not a number"""
    for key in _SCORE_FIELDS[field]:
        if key in data:
            value = data[key]
            break
    else:
        return f"Missing required field: {field}"

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return f"Invalid score for {field}: {value!r}"
    if not math.isfinite(value):
        return f"Invalid score for {field}: {value!r}"
    return clamp_score(float(value))


def parse_verdict(raw: str) -> Verdict:
    """
    Parse the judge's text into a verdict

    Parse order:
    1. JSON inside a code block
    2. First {...} span in the text
    3. VerdictParseFailure

    Out-of-range scores are clamped; missing or non-numeric fields fail the parse.
    """
    text = (raw or "").strip()
    json_text = _extract_json_text(text)
    if json_text is None:
        return VerdictParseFailure(raw_text=text, reason="No JSON object found in judge response")

    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        return VerdictParseFailure(raw_text=text, reason=f"Malformed JSON: {e.msg}")

    if not isinstance(data, dict):
        return VerdictParseFailure(raw_text=text, reason="Judge response is not a JSON object")

    scores: dict[str, float] = {}
    for field in _SCORE_FIELDS:
        result = _read_score(data, field)
        if isinstance(result, str):
            return VerdictParseFailure(raw_text=text, reason=result)
        scores[field] = result

    explanation = data.get("explanation")
    if not isinstance(explanation, str):
        return VerdictParseFailure(raw_text=text, reason="Missing required field: explanation")

    return VerdictOk(metrics=SuccessMetrics(explanation=explanation.strip(), **scores))


class LLMJudge:
    """
    Scorer that uses an LLM as a judge

    Passes the instructions, prompt, and primary response to a separate model for scoring.
    """

    def __init__(
        self,
        client: ModelClient,
        *,
        temperature: float = JUDGE_TEMPERATURE,
        max_tokens: int = JUDGE_MAX_TOKENS,
    ) -> None:
        self._client = client
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def judge(
        self,
        judge_model_id: str,
        instructions: str,
        prompt: str,
        response: str,
    ) -> JudgeOutcome:
        """
        Have the judge model score the response

        Transport errors propagate; unparseable output is returned as VerdictParseFailure.
        """
        judge_prompt = build_judge_prompt(instructions, prompt, response)
        judge_response = await self._client.chat(
            judge_model_id,
            JUDGE_SYSTEM_MESSAGE,
            judge_prompt,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        verdict = parse_verdict(judge_response.output)
        if isinstance(verdict, VerdictParseFailure):
            logger.debug("Unparseable judge output: %s", verdict.raw_text[:200])
        return JudgeOutcome(verdict=verdict, response=judge_response)

"""
instruct-lab-core CLI Runner

Runs one instruction test end to end: key check, model lookup, primary call,
judge evaluation, and an optional export.

Usage:
    python -m instruct_lab_core.runner --model openai/gpt-4o-mini \\
        --instructions "You are a concise assistant." --prompt "Explain TCP in two sentences."
    python -m instruct_lab_core.runner --model anthropic/claude-3-haiku --judge-model openai/gpt-4 \\
        --instructions-file system.txt --prompt "Summarize this" --export markdown --output result.md
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from instruct_lab_core.domain.entities import TestRun
from instruct_lab_core.domain.errors import LabError, ValidationError
from instruct_lab_core.export import EXPORT_FORMATS, export_filename, export_test_run
from instruct_lab_core.infrastructure.openrouter_api import OpenRouterAPI
from instruct_lab_core.lab_config import LabConfig, load_config, validate_config
from instruct_lab_core.session.store import SessionStore
from instruct_lab_core.use_cases.catalog import ModelCatalog
from instruct_lab_core.use_cases.evaluation import EvaluationEngine
from instruct_lab_core.workflow import Step

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="instruct-lab-core: Test system instructions against an LLM and score the response",
    )
    parser.add_argument(
        "--model",
        required=True,
        help="OpenRouter model id to test (e.g. openai/gpt-4o-mini)",
    )
    parser.add_argument(
        "--judge-model",
        default=None,
        help="OpenRouter model id used as the judge (default: INSTRUCT_LAB_JUDGE_MODEL)",
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--instructions", help="System instructions text")
    source.add_argument("--instructions-file", help="Path to a file containing the system instructions")
    parser.add_argument("--prompt", required=True, help="User prompt sent with the instructions")
    parser.add_argument("--temperature", type=float, default=None, help="Primary call temperature (0-2)")
    parser.add_argument("--max-tokens", type=int, default=None, help="Primary call max tokens")
    parser.add_argument(
        "--export",
        choices=EXPORT_FORMATS,
        default=None,
        help="Write the result in the given format",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Export path (default: generated filename in the current directory)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    return parser.parse_args(argv)


def _read_instructions(args: argparse.Namespace) -> str:
    if args.instructions_file:
        path = Path(args.instructions_file)
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise ValidationError(f"Cannot read instructions file: {path}") from e
    return args.instructions


def _advance(store: SessionStore, target: Step) -> None:
    transition = store.request_step(target)
    if not transition.accepted:
        raise ValidationError(transition.reason or f"Cannot move to {target.name}")


def _print_result(run: TestRun) -> None:
    m = run.metrics
    print("=== Response ===\n")
    print(run.response)
    print()
    print("=== Scores ===\n")
    print(f"  {'Overall':<24} {m.overall_score:>6.1f}")
    print(f"  {'Coherence':<24} {m.coherence_score:>6.1f}")
    print(f"  {'Task completion':<24} {m.task_completion_score:>6.1f}")
    print(f"  {'Instruction adherence':<24} {m.instruction_adherence_score:>6.1f}")
    print(f"  {'Efficiency':<24} {m.efficiency_score:>6.1f}")
    if m.parse_failed:
        print("\n  WARNING: judge verdict could not be parsed; scores are placeholders.")
    if m.explanation:
        print(f"\n  {m.explanation}")
    print()
    print("=== Usage ===\n")
    print(f"  Tokens:         {run.token_usage.total_tokens} "
          f"({run.token_usage.prompt_tokens} prompt / {run.token_usage.completion_tokens} completion)")
    print(f"  Execution time: {run.execution_time_ms}ms")
    print(f"  Cost:           ${run.cost:.6f} "
          f"(primary ${run.cost_breakdown.primary:.6f} / evaluation ${run.cost_breakdown.evaluation:.6f})")
    print()


async def run_once(args: argparse.Namespace, config: LabConfig, api_key: str) -> TestRun:
    """
    Drive a session through SETUP -> INSTRUCTIONS -> TEST -> RESULTS.

    Raises:
        LabError: Any failure along the way
    """
    api = OpenRouterAPI(config.openrouter.base_url, timeout=config.openrouter.timeout_seconds)
    catalog = ModelCatalog(api, cache_ttl_seconds=config.catalog.cache_ttl_seconds)
    store = SessionStore(EvaluationEngine(config=config), config=config, key_verifier=api.verify_key)
    store.initialize()

    # Step 1: credential and model
    print("=== Setup ===\n")
    await store.set_credential(api_key)
    print(f"  API key:     {store.vault.masked()} (verified)")

    model = await catalog.get(api_key, args.model)
    if model is None:
        raise ValidationError(f"Model '{args.model}' is not available on OpenRouter")
    store.select(model)
    print(f"  Model:       {model.name} ({model.provider})")

    judge_id = args.judge_model or config.evaluation.judge_model
    judge_model = await catalog.get(api_key, judge_id)
    if judge_model is None:
        raise ValidationError(f"Judge model '{judge_id}' is not available on OpenRouter")
    store.configure_evaluation(judge_model, temperature=args.temperature, max_tokens=args.max_tokens)
    print(f"  Judge model: {judge_model.name}")
    print()

    # Step 2: instructions
    _advance(store, Step.INSTRUCTIONS)
    store.set_instructions(_read_instructions(args))

    # Step 3: test
    _advance(store, Step.TEST)
    store.set_prompt(args.prompt)
    print("=== Running Evaluation ===\n")
    run = await store.run_evaluation()
    if run is None:
        raise LabError("Evaluation result was discarded")
    return run


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config()
    errors = validate_config(config)
    if errors:
        for error in errors:
            print(f"ERROR: {error}")
        return 1

    api_key = os.environ.get("OPENROUTER_API_KEY", "")
    if not api_key:
        print("ERROR: OPENROUTER_API_KEY is not set.")
        return 1

    try:
        run = asyncio.run(run_once(args, config, api_key))
    except LabError as e:
        logger.debug("Run failed with context %s", e.context)
        print(f"ERROR: {e.message}")
        return 1

    _print_result(run)

    if args.export:
        output = Path(args.output or export_filename("test", args.export, run_id=run.id))
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(export_test_run(run, args.export), encoding="utf-8")
        print("=== Output ===\n")
        print(f"  Export: {output}")
        print()

    return 0


if __name__ == "__main__":
    sys.exit(main())

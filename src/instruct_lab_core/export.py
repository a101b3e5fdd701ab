"""
Export

Renders a single TestRun or a session history as JSON, CSV, or Markdown.
History summaries are computed with pandas.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Sequence

import pandas as pd

from instruct_lab_core.domain.entities import TestRun

EXPORT_FORMATS = ("json", "csv", "markdown")
EXPORT_VERSION = "1.0"

_EXTENSIONS = {"json": "json", "csv": "csv", "markdown": "md"}

# Column order of the CSV export
CSV_COLUMNS = [
    "id",
    "timestamp",
    "model",
    "model_id",
    "model_provider",
    "evaluation_model",
    "instructions",
    "prompt",
    "response",
    "overall_score",
    "coherence_score",
    "task_completion_score",
    "instruction_adherence_score",
    "efficiency_score",
    "explanation",
    "parse_failed",
    "prompt_tokens",
    "completion_tokens",
    "total_tokens",
    "execution_time_ms",
    "cost",
    "primary_cost",
    "evaluation_cost",
]


def _check_format(fmt: str) -> str:
    fmt = fmt.lower()
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format '{fmt}'. Choose from: {', '.join(EXPORT_FORMATS)}")
    return fmt


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def run_to_row(run: TestRun) -> dict[str, Any]:
    """Flatten a TestRun into one CSV/DataFrame row"""
    return {
        "id": run.id,
        "timestamp": run.timestamp,
        "model": run.model,
        "model_id": run.model_id,
        "model_provider": run.model_provider,
        "evaluation_model": run.evaluation_model,
        "instructions": run.instructions,
        "prompt": run.prompt,
        "response": run.response,
        "overall_score": run.metrics.overall_score,
        "coherence_score": run.metrics.coherence_score,
        "task_completion_score": run.metrics.task_completion_score,
        "instruction_adherence_score": run.metrics.instruction_adherence_score,
        "efficiency_score": run.metrics.efficiency_score,
        "explanation": run.metrics.explanation,
        "parse_failed": run.metrics.parse_failed,
        "prompt_tokens": run.token_usage.prompt_tokens,
        "completion_tokens": run.token_usage.completion_tokens,
        "total_tokens": run.token_usage.total_tokens,
        "execution_time_ms": run.execution_time_ms,
        "cost": run.cost,
        "primary_cost": run.cost_breakdown.primary,
        "evaluation_cost": run.cost_breakdown.evaluation,
    }


def runs_to_dataframe(runs: Sequence[TestRun]) -> pd.DataFrame:
    return pd.DataFrame([run_to_row(r) for r in runs], columns=CSV_COLUMNS)


def summarize_history(runs: Sequence[TestRun]) -> dict[str, Any]:
    """
    Aggregate statistics over a history.

    Returns:
        dict with average sub-scores and overall score, token/cost/time totals,
        and per-model usage counts

    Raises:
        ValueError: If runs is empty
    """
    if not runs:
        raise ValueError("No test runs to summarize")

    df = runs_to_dataframe(runs)
    return {
        "average_scores": {
            "overall": float(df["overall_score"].mean()),
            "coherence": float(df["coherence_score"].mean()),
            "task_completion": float(df["task_completion_score"].mean()),
            "instruction_adherence": float(df["instruction_adherence_score"].mean()),
            "efficiency": float(df["efficiency_score"].mean()),
        },
        "total_tokens": int(df["total_tokens"].sum()),
        "total_cost": float(df["cost"].sum()),
        "total_execution_time_ms": int(df["execution_time_ms"].sum()),
        "model_usage": {str(k): int(v) for k, v in df["model"].value_counts().items()},
    }


def _metadata(runs: Sequence[TestRun], now: datetime | None) -> dict[str, Any]:
    timestamps = pd.to_datetime([r.timestamp for r in runs], utc=True)
    return {
        "export_date": _now(now).isoformat(),
        "total_tests": len(runs),
        "date_range": {
            "from": timestamps.min().isoformat(),
            "to": timestamps.max().isoformat(),
        },
        "version": EXPORT_VERSION,
    }


def _fmt_score(value: float) -> str:
    return f"{value:.1f}"


def _run_markdown(run: TestRun, heading: str = "#") -> list[str]:
    m = run.metrics
    lines = [
        f"{heading} Test Result: {run.model}",
        "",
        f"- **Test ID:** {run.id}",
        f"- **Date:** {run.timestamp}",
        f"- **Model:** {run.model} ({run.model_provider}, `{run.model_id}`)",
        f"- **Evaluation model:** `{run.evaluation_model}`",
        f"- **Execution time:** {run.execution_time_ms} ms",
        f"- **Tokens:** {run.token_usage.total_tokens} "
        f"({run.token_usage.prompt_tokens} prompt / {run.token_usage.completion_tokens} completion)",
        f"- **Cost:** ${run.cost:.6f} (primary ${run.cost_breakdown.primary:.6f}, "
        f"evaluation ${run.cost_breakdown.evaluation:.6f})",
        "",
        f"{heading}# Scores",
        "",
        "| Metric | Score |",
        "|---|---|",
        f"| Overall | {_fmt_score(m.overall_score)} |",
        f"| Coherence | {_fmt_score(m.coherence_score)} |",
        f"| Task completion | {_fmt_score(m.task_completion_score)} |",
        f"| Instruction adherence | {_fmt_score(m.instruction_adherence_score)} |",
        f"| Efficiency | {_fmt_score(m.efficiency_score)} |",
        "",
    ]
    if m.parse_failed:
        lines += ["> The evaluation verdict could not be parsed; scores are placeholders.", ""]
    if m.explanation:
        lines += [f"{heading}# Explanation", "", m.explanation, ""]
    lines += [
        f"{heading}# Instructions", "", "```", run.instructions, "```", "",
        f"{heading}# Prompt", "", "```", run.prompt, "```", "",
        f"{heading}# Response", "", run.response, "",
    ]
    return lines


def export_test_run(run: TestRun, fmt: str, now: datetime | None = None) -> str:
    """
    Render a single TestRun.

    Args:
        run: Completed evaluation
        fmt: "json", "csv", or "markdown"
        now: Export timestamp (current UTC time if None)

    Raises:
        ValueError: Unsupported format
    """
    fmt = _check_format(fmt)
    if fmt == "json":
        payload = {"metadata": _metadata([run], now), "test": run.to_dict()}
        return json.dumps(payload, ensure_ascii=False, indent=2)
    if fmt == "csv":
        return runs_to_dataframe([run]).to_csv(index=False)
    return "\n".join(_run_markdown(run))


def export_history(runs: Sequence[TestRun], fmt: str, now: datetime | None = None) -> str:
    """
    Render a whole history with metadata and summary.

    Raises:
        ValueError: Empty history or unsupported format
    """
    fmt = _check_format(fmt)
    if not runs:
        raise ValueError("No test runs to export")

    if fmt == "csv":
        return runs_to_dataframe(runs).to_csv(index=False)

    metadata = _metadata(runs, now)
    summary = summarize_history(runs)
    if fmt == "json":
        payload = {
            "metadata": metadata,
            "summary": summary,
            "tests": [r.to_dict() for r in runs],
        }
        return json.dumps(payload, ensure_ascii=False, indent=2)

    avg = summary["average_scores"]
    lines = [
        "# Instruct-Lab Test History",
        "",
        f"- **Exported:** {metadata['export_date']}",
        f"- **Tests:** {metadata['total_tests']}",
        f"- **Date range:** {metadata['date_range']['from']} to {metadata['date_range']['to']}",
        f"- **Total tokens:** {summary['total_tokens']}",
        f"- **Total cost:** ${summary['total_cost']:.6f}",
        f"- **Total execution time:** {summary['total_execution_time_ms']} ms",
        "",
        "## Average Scores",
        "",
        "| Metric | Average |",
        "|---|---|",
        f"| Overall | {_fmt_score(avg['overall'])} |",
        f"| Coherence | {_fmt_score(avg['coherence'])} |",
        f"| Task completion | {_fmt_score(avg['task_completion'])} |",
        f"| Instruction adherence | {_fmt_score(avg['instruction_adherence'])} |",
        f"| Efficiency | {_fmt_score(avg['efficiency'])} |",
        "",
        "## Model Usage",
        "",
    ]
    lines += [f"- {model}: {count}" for model, count in summary["model_usage"].items()]
    lines.append("")
    for run in runs:
        lines += _run_markdown(run, heading="##")
    return "\n".join(lines)


def export_filename(kind: str, fmt: str, run_id: str | None = None, now: datetime | None = None) -> str:
    """
    Build the download filename

    instruct-lab-test-<first 8 chars of id>-<YYYY-MM-DD>.<ext> for a single run,
    instruct-lab-history-<YYYY-MM-DD>.<ext> for a history.
    """
    fmt = _check_format(fmt)
    date = _now(now).strftime("%Y-%m-%d")
    ext = _EXTENSIONS[fmt]
    if kind == "test":
        if not run_id:
            raise ValueError("run_id is required for a test export filename")
        return f"instruct-lab-test-{run_id[:8]}-{date}.{ext}"
    if kind == "history":
        return f"instruct-lab-history-{date}.{ext}"
    raise ValueError(f"Unknown export kind '{kind}'. Choose 'test' or 'history'")

"""
Domain Constants

Centrally manages constants shared across the evaluation workflow.
"""

import math

# Weights for the overall success score (must sum to 1.0)
SCORE_WEIGHTS = {
    "coherence": 0.20,
    "task_completion": 0.35,
    "instruction_adherence": 0.35,
    "efficiency": 0.10,
}

if not math.isclose(sum(SCORE_WEIGHTS.values()), 1.0):
    raise ValueError("SCORE_WEIGHTS must sum to 1.0")

# Sub-score range reported by the judge
SCORE_MIN = 0.0
SCORE_MAX = 100.0

# Primary call defaults
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000

# Judge call defaults (low temperature for consistent evaluation)
DEFAULT_JUDGE_MODEL = "openai/gpt-4"
JUDGE_TEMPERATURE = 0.1
JUDGE_MAX_TOKENS = 500

# Input length limits (characters, after trimming)
INSTRUCTIONS_MIN_LENGTH = 10
INSTRUCTIONS_MAX_LENGTH = 4000
PROMPT_MIN_LENGTH = 5
PROMPT_MAX_LENGTH = 2000
API_KEY_MIN_LENGTH = 20

# OpenRouter
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_CONTEXT_LENGTH = 4096

# Session lifecycle
SESSION_TTL_SECONDS = 60 * 60
MAX_STORAGE_BYTES = 10 * 1024 * 1024

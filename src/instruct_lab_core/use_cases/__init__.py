"""
Use Cases Layer

Evaluation execution and the model catalog, called from the session store and runner.
"""

from instruct_lab_core.use_cases.catalog import (
    ModelCatalog,
    model_from_entry,
    provider_from_id,
)
from instruct_lab_core.use_cases.evaluation import (
    EvaluationEngine,
    EvaluationParams,
)

__all__ = [
    # catalog
    "ModelCatalog",
    "model_from_entry",
    "provider_from_id",
    # evaluation
    "EvaluationEngine",
    "EvaluationParams",
]

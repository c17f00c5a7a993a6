"""Public schema exports for the docchat SDK."""

from docchat.schemas.evaluation import EvaluationResult

__all__ = ["EvaluationResult"]

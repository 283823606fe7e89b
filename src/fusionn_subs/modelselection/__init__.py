"""Automatic selection of the best free OpenRouter translation model."""

from fusionn_subs.modelselection.catalog import (
    CandidateModel,
    CatalogError,
    OpenRouterCatalog,
    is_free_model,
)
from fusionn_subs.modelselection.evaluator import EvaluationError, Evaluator, GeminiEvaluator
from fusionn_subs.modelselection.selector import ModelSelectionError, ModelSelector

__all__ = [
    "CandidateModel",
    "CatalogError",
    "EvaluationError",
    "Evaluator",
    "GeminiEvaluator",
    "ModelSelectionError",
    "ModelSelector",
    "OpenRouterCatalog",
    "is_free_model",
]

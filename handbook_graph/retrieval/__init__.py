"""Graph-backed context retrieval for plan generation."""

from handbook_graph.retrieval.context import ContextRetriever
from handbook_graph.retrieval.models import (
    ContextRecord,
    ContextTuple,
    OperationPromptResult,
    OperationResult,
)

__all__ = [
    "ContextRecord",
    "ContextRetriever",
    "ContextTuple",
    "OperationPromptResult",
    "OperationResult",
]

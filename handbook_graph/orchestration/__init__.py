from handbook_graph.orchestration.extraction import EntityExtractor, ExtractionResult, validate_extraction
from handbook_graph.orchestration.orchestrator import (
    HandledPart,
    OrchestrationResponse,
    Orchestrator,
    UnhandledPart,
)
from handbook_graph.orchestration.progress import (
    LoggingProgressSink,
    NoOpProgressSink,
    ProgressRateLimiter,
    ProgressSink,
)

__all__ = [
    "EntityExtractor",
    "ExtractionResult",
    "HandledPart",
    "LoggingProgressSink",
    "NoOpProgressSink",
    "OrchestrationResponse",
    "Orchestrator",
    "ProgressRateLimiter",
    "ProgressSink",
    "UnhandledPart",
    "validate_extraction",
]

"""
Exception taxonomy for handbook-graph.

Every error raised by the package derives from HandbookGraphError so callers
can catch the whole family at the orchestration boundary:

- NotFoundError: entity, operation or resource absent
- ValidationError: generated plan/extraction is malformed or references
  operations that are not in the handbook
- ExecutionError: an invoked operation failed, or a generation loop ran out
  of attempts
- GraphIOError: storage backend read/write failure (DuplicateKeyError for
  writes that collide with an existing key)
- ConfigurationError: missing or invalid backend/handbook configuration
"""

from __future__ import annotations


class HandbookGraphError(Exception):
    """Base exception for handbook-graph errors."""

    pass


class NotFoundError(HandbookGraphError):
    """Requested entity, operation or resource does not exist."""

    pass


class ValidationError(HandbookGraphError):
    """Generated content failed structural or referential validation."""

    pass


class ExecutionError(HandbookGraphError):
    """
    An operation invocation failed, or a bounded generation loop gave up.

    Carries the identity of the failing operation when there is one, so the
    caller can report which part of a plan broke.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        service: str | None = None,
        step: str | None = None,
        attempts: int | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.service = service
        self.step = step
        self.attempts = attempts


class GraphIOError(HandbookGraphError):
    """Storage backend read or write failed."""

    pass


class DuplicateKeyError(GraphIOError):
    """A node or edge with the same key is already stored."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Duplicate key: {key!r}")
        self.key = key


class ConfigurationError(HandbookGraphError):
    """Missing or invalid configuration."""

    pass


def compact_cause(exc: BaseException, limit: int = 300) -> str:
    """One-line summary of an exception chain, truncated to ``limit`` chars."""
    parts: list[str] = []
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        text = str(current).strip().splitlines()[0] if str(current).strip() else ""
        parts.append(f"{type(current).__name__}: {text}" if text else type(current).__name__)
        current = current.__cause__ or current.__context__
    summary = " <- ".join(parts)
    if len(summary) > limit:
        summary = summary[: limit - 3] + "..."
    return summary

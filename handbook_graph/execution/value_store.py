"""
Per-request value store.

Holds intermediate results produced while a plan executes. One store is
created per request and discarded (cleared) when the request ends, so no
data leaks between requests.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

LARGE_DATA_THRESHOLD = 800
LARGE_DATA_NOTE = " (large data: reference it by identifier rather than inlining it)"


def _json_length(content: Any) -> int:
    try:
        return len(json.dumps(content, default=str))
    except (TypeError, ValueError):
        return len(str(content))


@dataclass(frozen=True)
class Value:
    identifier: str
    content: Any
    description: str = ""

    @classmethod
    def create(cls, identifier: str, content: Any, description: str = "") -> "Value":
        if _json_length(content) > LARGE_DATA_THRESHOLD and LARGE_DATA_NOTE not in description:
            description = f"{description}{LARGE_DATA_NOTE}"
        return cls(identifier=identifier, content=content, description=description)

    @property
    def is_large(self) -> bool:
        return LARGE_DATA_NOTE in self.description


class ValueStore:
    """Thread-safe identifier -> Value map scoped to one request."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: Dict[str, Value] = {}

    def put(self, identifier: str, content: Any, description: str = "") -> Value:
        """Store ``content`` under ``identifier``, replacing any previous value."""
        if not identifier:
            raise ValueError("identifier must be non-empty")
        value = Value.create(identifier, content, description)
        with self._lock:
            self._values[identifier] = value
        return value

    def get(self, identifier: str) -> Optional[Value]:
        with self._lock:
            return self._values.get(identifier)

    def get_all(self, identifiers: Iterable[str]) -> List[Value]:
        """
        Values for each identifier, in request order.

        An identifier ending in ``*`` matches every stored identifier with
        that prefix (in insertion order). Unknown identifiers are skipped and
        each value is returned at most once.
        """
        with self._lock:
            snapshot = list(self._values.items())
        found: Dict[str, Value] = {}
        for wanted in identifiers:
            if wanted.endswith("*"):
                prefix = wanted[:-1]
                for key, value in snapshot:
                    if key.startswith(prefix):
                        found.setdefault(key, value)
            else:
                for key, value in snapshot:
                    if key == wanted:
                        found.setdefault(key, value)
                        break
        return list(found.values())

    def list(self) -> List[Value]:
        with self._lock:
            return list(self._values.values())

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._values

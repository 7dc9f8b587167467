"""
Prompt Schema Key (PSK): deterministic cache key for a prompt schema.

The key is built from ``(action, sorted(entities), sorted(params.keys()),
group_by)``. ``group_by`` keeps its declared order because grouping order
changes the result. Parameter values are excluded, so requests that differ
only in literal arguments share a key.

String form (filename safe)::

    action[-entity1_entity2][-field1_field2][-group_field1_field2]
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from pydantic import BaseModel, Field


class PromptSchema(BaseModel):
    """Canonical structured form of a natural-language request."""

    action: str = ""
    entities: List[str] = Field(default_factory=list)
    params: Dict[str, Any] = Field(default_factory=dict)
    group_by: List[str] = Field(default_factory=list)

    def key(self) -> "PromptSchemaKey":
        return PromptSchemaKey.from_schema(self)


@dataclass(frozen=True)
class PromptSchemaKey:
    action: str
    entities: Tuple[str, ...] = ()
    fields: Tuple[str, ...] = ()
    group_by: Tuple[str, ...] = ()
    string_key: str = field(init=False, compare=False, repr=False)
    hash_key: str = field(init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        # frozen: normalize through object.__setattr__
        object.__setattr__(self, "action", self.action or "")
        object.__setattr__(self, "entities", tuple(sorted(self.entities or ())))
        object.__setattr__(self, "fields", tuple(sorted(self.fields or ())))
        object.__setattr__(self, "group_by", tuple(self.group_by or ()))
        string_key = self._build_string_key()
        object.__setattr__(self, "string_key", string_key)
        object.__setattr__(self, "hash_key", hashlib.sha256(string_key.encode("utf-8")).hexdigest())

    @classmethod
    def create(
        cls,
        action: str,
        entities: Sequence[str] = (),
        fields: Sequence[str] = (),
        group_by: Sequence[str] = (),
    ) -> "PromptSchemaKey":
        return cls(action, tuple(entities), tuple(fields), tuple(group_by))

    @classmethod
    def from_schema(cls, schema: PromptSchema) -> "PromptSchemaKey":
        return cls.create(schema.action, schema.entities, list(schema.params), schema.group_by)

    def _build_string_key(self) -> str:
        key = self.action
        if self.entities:
            key += "-" + "_".join(self.entities)
        if self.fields:
            key += "-" + "_".join(self.fields)
        if self.group_by:
            key += "-group_" + "_".join(self.group_by)
        return key

    def __str__(self) -> str:
        return self.string_key

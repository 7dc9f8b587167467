from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, Field


class ContextTuple(BaseModel):
    """Retrieval intent: an entity plus an optional operation allow-list."""

    entity: str
    operations: List[str] = Field(default_factory=list)


class OperationResult(BaseModel):
    operation_id: str
    method: str = ""
    path: str = ""
    summary: str = ""
    description: str = ""
    signature: str = ""
    category: str = ""
    service_slug: str = ""
    tags: List[str] = Field(default_factory=list)
    examples: List[Dict[str, Any]] = Field(default_factory=list)
    documentation: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_properties(cls, props: Dict[str, Any]) -> "OperationResult":
        return cls(
            operation_id=props["operation_id"],
            method=props.get("method", ""),
            path=props.get("path", ""),
            summary=props.get("summary", ""),
            description=props.get("description", ""),
            signature=props.get("signature", ""),
            category=props.get("category", ""),
            service_slug=props.get("service_slug", ""),
            tags=list(props.get("tags", [])),
            examples=list(props.get("examples", [])),
            documentation=list(props.get("documentation", [])),
        )


class ContextRecord(BaseModel):
    """Graph context retrieved for one ContextTuple."""

    entity: str
    requested_operations: List[str] = Field(default_factory=list)
    entity_info: Dict[str, Any] = Field(default_factory=dict)
    fields: List[Dict[str, Any]] = Field(default_factory=list)
    documentation: List[Dict[str, Any]] = Field(default_factory=list)
    operations: List[OperationResult] = Field(default_factory=list)


class OperationPromptResult(BaseModel):
    """Everything a prompt needs to describe one operation."""

    operation_id: str
    operation_name: str = ""
    description: str = ""
    signature: str = ""
    documentation: str = ""
    relationships: List[Dict[str, Any]] = Field(default_factory=list)
    examples: List[Dict[str, Any]] = Field(default_factory=list)
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Dict[str, Any] = Field(default_factory=dict)

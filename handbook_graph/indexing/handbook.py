"""
Handbook input contract consumed by the indexer.

The handbook loader (file-format parsing, OpenAPI resolution) lives outside
this package; it hands over these already-resolved models.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field


class FieldSpec(BaseModel):
    name: str
    description: str = ""
    field_type: str = "string"
    entity: Optional[str] = None  # owning entity; defaults to the operation's first tag


class ExampleSpec(BaseModel):
    name: str
    summary: str = ""
    request: Optional[Any] = None
    response: Optional[Any] = None
    status: str = "200"


class OperationSpec(BaseModel):
    operation_id: str
    method: str = "GET"
    path: str
    summary: str = ""
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    category: str = ""
    request_fields: List[FieldSpec] = Field(default_factory=list)
    response_fields: List[FieldSpec] = Field(default_factory=list)
    examples: List[ExampleSpec] = Field(default_factory=list)
    documentation: str = ""

    def signature(self) -> str:
        """Rendered signature, e.g. ``GET /orders/{id} - Retrieve an order``."""
        base = f"{self.method.upper()} {self.path}"
        return f"{base} - {self.summary}" if self.summary else base


class TagSpec(BaseModel):
    name: str
    description: str = ""


class ServiceSpec(BaseModel):
    slug: str
    title: str = ""
    description: str = ""
    tags: List[TagSpec] = Field(default_factory=list)
    operations: List[OperationSpec] = Field(default_factory=list)

    def entity_names(self, operation: OperationSpec) -> List[str]:
        """Entities an operation belongs to; untagged operations fall under the service."""
        return operation.tags or [self.title or self.slug]

    def tag_description(self, name: str) -> str:
        for tag in self.tags:
            if tag.name == name:
                return tag.description
        return ""


class DocumentSource(BaseModel):
    uri: str
    content: str
    doc_type: str = "markdown"
    title: str = ""
    service_slug: str = ""
    related_entities: List[str] = Field(default_factory=list)


class Handbook(BaseModel):
    name: str = "handbook"
    services: List[ServiceSpec] = Field(default_factory=list)
    documents: List[DocumentSource] = Field(default_factory=list)

    def allowed_operations(self) -> set[str]:
        """Every operation id the handbook exposes."""
        return {op.operation_id for service in self.services for op in service.operations}

    def entity_catalog(self) -> dict[str, List[str]]:
        """Entity name -> operation ids (and categories) offered for it."""
        catalog: dict[str, set[str]] = {}
        for service in self.services:
            for op in service.operations:
                for entity in service.entity_names(op):
                    names = catalog.setdefault(entity, set())
                    names.add(op.operation_id)
                    if op.category:
                        names.add(op.category)
        return {entity: sorted(names) for entity, names in sorted(catalog.items())}

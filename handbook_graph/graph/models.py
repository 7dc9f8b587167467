"""
Graph models for the handbook knowledge graph.

Nodes are immutable value objects created once during indexing. Each node
variant carries a ``key`` and a ``node_type`` discriminator and serializes to
a flat property map; ``node_from_properties`` rebuilds the variant from that
map. Edges reference nodes by key only, so a dangling edge is legal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Union

KEY_SEPARATOR = "|"

_INVALID_KEY_CHARS = re.compile(r"[^A-Za-z0-9_\-.:]")


class NodeType(str, Enum):
    """Kind of node in the handbook graph."""

    ENTITY = "entity"
    OPERATION = "operation"
    FIELD = "field"
    EXAMPLE = "example"
    DOC_CHUNK = "doc_chunk"
    DOCUMENTATION = "documentation"


class EdgeType(str, Enum):
    """Kind of directed relationship between two nodes."""

    HAS_OPERATION = "HAS_OPERATION"  # entity -> operation
    HAS_EXAMPLE = "HAS_EXAMPLE"  # operation -> example
    HAS_DOCUMENTATION = "HAS_DOCUMENTATION"  # entity/operation -> chunk
    FOLLOWS_CHUNK = "FOLLOWS_CHUNK"  # chunk -> next chunk
    PART_OF = "PART_OF"  # first chunk -> parent documentation
    RELATES_TO = "RELATES_TO"  # field -> entity
    RELATES_TO_ENTITY = "RELATES_TO_ENTITY"  # entity -> entity
    DEMONSTRATES = "DEMONSTRATES"  # example -> operation
    DESCRIBES = "DESCRIBES"  # documentation -> entity
    DEPENDS_ON = "DEPENDS_ON"
    HAS_FEEDBACK = "HAS_FEEDBACK"  # reserved


def node_key(kind: str, *parts: str) -> str:
    """Build a namespaced node key, e.g. ``node_key("entity", "Order")`` -> ``entity|Order``."""
    return KEY_SEPARATOR.join([kind, *(str(p) for p in parts)])


def sanitize_key(key: str) -> str:
    """
    Storage-safe form of a node key.

    ``|`` becomes ``_`` and every other character outside ``[A-Za-z0-9_-.:]``
    becomes ``_``. The transform is idempotent, so drivers may apply it to
    keys that were already sanitized.
    """
    return _INVALID_KEY_CHARS.sub("_", key.replace(KEY_SEPARATOR, "_"))


def edge_key(from_key: str, to_key: str, edge_type: "EdgeType | str") -> str:
    """Storage-safe key of an edge: ``<from>_to_<to>_<TYPE>``."""
    return f"{sanitize_key(from_key)}_to_{sanitize_key(to_key)}_{EdgeType(edge_type).value}"


def _serialize(value: Any) -> Any:
    if isinstance(value, tuple):
        return [_serialize(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class _NodeBase:
    node_type: ClassVar[NodeType]

    def to_properties(self) -> dict[str, Any]:
        """Flat, JSON-serializable property map including ``node_type``."""
        props: dict[str, Any] = {f.name: _serialize(getattr(self, f.name)) for f in fields(self)}
        props["node_type"] = self.node_type.value
        return props

    @property
    def storage_key(self) -> str:
        return sanitize_key(self.key)  # type: ignore[attr-defined]


@dataclass(frozen=True)
class EntityNode(_NodeBase):
    """A business concept (an OpenAPI tag)."""

    node_type: ClassVar[NodeType] = NodeType.ENTITY

    key: str
    name: str
    description: str = ""
    service_slug: str = ""
    operation_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class OperationNode(_NodeBase):
    """A single callable API operation."""

    node_type: ClassVar[NodeType] = NodeType.OPERATION

    key: str
    operation_id: str
    method: str = "GET"
    path: str = ""
    summary: str = ""
    description: str = ""
    service_slug: str = ""
    tags: tuple[str, ...] = ()
    signature: str = ""
    example_keys: tuple[str, ...] = ()
    documentation_uri: str = ""
    category: str = ""  # verb classification used by operation allow-lists


@dataclass(frozen=True)
class FieldNode(_NodeBase):
    """A data field belonging to an entity."""

    node_type: ClassVar[NodeType] = NodeType.FIELD

    key: str
    name: str
    description: str = ""
    field_type: str = "string"
    entity_key: str = ""
    service_slug: str = ""
    sources: tuple[str, ...] = ()  # every "<operationId>:request|response" declaring the field


@dataclass(frozen=True)
class ExampleNode(_NodeBase):
    """A request/response example for an operation."""

    node_type: ClassVar[NodeType] = NodeType.EXAMPLE

    key: str
    name: str
    summary: str = ""
    request_body: str = ""  # serialized JSON
    response_body: str = ""  # serialized JSON
    response_status: str = "200"
    operation_key: str = ""


@dataclass(frozen=True)
class DocChunkNode(_NodeBase):
    """A bounded-size segment of a documentation source."""

    node_type: ClassVar[NodeType] = NodeType.DOC_CHUNK

    key: str
    content: str
    source_uri: str = ""
    source_type: str = "markdown"
    chunk_index: int = 0
    start_offset: int = 0
    end_offset: int = 0
    title: str = ""
    parent_key: str = ""


@dataclass(frozen=True)
class DocumentationNode(_NodeBase):
    """Parent node of a (possibly chunked) documentation source."""

    node_type: ClassVar[NodeType] = NodeType.DOCUMENTATION

    key: str
    title: str
    content: str = ""
    doc_type: str = "markdown"
    source_uri: str = ""
    related_keys: tuple[str, ...] = ()
    service_slug: str = ""


GraphNode = Union[EntityNode, OperationNode, FieldNode, ExampleNode, DocChunkNode, DocumentationNode]

NODE_CLASSES: dict[NodeType, type] = {
    NodeType.ENTITY: EntityNode,
    NodeType.OPERATION: OperationNode,
    NodeType.FIELD: FieldNode,
    NodeType.EXAMPLE: ExampleNode,
    NodeType.DOC_CHUNK: DocChunkNode,
    NodeType.DOCUMENTATION: DocumentationNode,
}


def node_from_properties(props: dict[str, Any]) -> GraphNode:
    """Rebuild a node variant from its property map."""
    try:
        node_type = NodeType(props["node_type"])
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Property map has no valid node_type: {props.get('node_type')!r}") from exc

    cls = NODE_CLASSES[node_type]
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if f.name in props:
            value = props[f.name]
            kwargs[f.name] = tuple(value) if isinstance(value, list) else value
    return cls(**kwargs)


@dataclass(frozen=True)
class GraphEdge:
    """Directed, typed relationship between two node keys."""

    from_key: str
    to_key: str
    edge_type: EdgeType
    properties: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        raw = self.edge_type.value if isinstance(self.edge_type, EdgeType) else str(self.edge_type)
        if not raw.strip():
            raise ValueError("edge_type must not be empty")
        try:
            object.__setattr__(self, "edge_type", EdgeType(raw.strip().upper()))
        except ValueError as exc:
            raise ValueError(f"Unknown edge type: {raw!r}") from exc

    @property
    def key(self) -> str:
        return edge_key(self.from_key, self.to_key, self.edge_type)

    def to_properties(self) -> dict[str, Any]:
        return {
            "from_key": self.from_key,
            "to_key": self.to_key,
            "edge_type": self.edge_type.value,
            "properties": dict(self.properties),
        }

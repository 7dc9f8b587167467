"""
Handbook indexing: chunking documentation and building the knowledge graph.
"""

from handbook_graph.indexing.chunker import DocumentChunker, infer_title
from handbook_graph.indexing.handbook import (
    DocumentSource,
    ExampleSpec,
    FieldSpec,
    Handbook,
    OperationSpec,
    ServiceSpec,
    TagSpec,
)
from handbook_graph.indexing.indexer import GraphIndexer, IndexingReport

__all__ = [
    "DocumentChunker",
    "DocumentSource",
    "ExampleSpec",
    "FieldSpec",
    "GraphIndexer",
    "Handbook",
    "IndexingReport",
    "OperationSpec",
    "ServiceSpec",
    "TagSpec",
    "infer_title",
]

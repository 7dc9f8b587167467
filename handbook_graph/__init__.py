"""
handbook-graph: knowledge-graph indexing and retrieval for API handbooks.

A handbook (services, operations, examples, documentation) is indexed into
a typed graph. Natural-language requests are turned into bounded graph
queries whose results feed plan generation, and validated plans are
executed against registered operation handlers.
"""

__version__ = "0.1.0"

from handbook_graph.cache.psk import PromptSchema, PromptSchemaKey

__all__ = ["PromptSchema", "PromptSchemaKey"]

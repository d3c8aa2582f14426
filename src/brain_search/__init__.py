"""brain-search: chunked semantic embeddings and retrieval for a markdown knowledge base."""

__version__ = "0.1.0"

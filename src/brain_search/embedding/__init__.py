"""Chunking and the embedding server client."""

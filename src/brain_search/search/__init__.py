"""Semantic, keyword and related-note search."""

"""Vector store and embedding queue on SQLite + sqlite-vec."""

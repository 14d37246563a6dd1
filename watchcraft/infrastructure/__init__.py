"""Infrastructure layer - storage, cache, documents and observers."""

"""Document ingestion: chunk indexing and triplet extraction."""

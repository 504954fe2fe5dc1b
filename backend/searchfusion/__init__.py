"""SearchFusion - hybrid lexical + vector search with reciprocal rank fusion."""

"""Hybrid retrieval package: lexical + vector retrieval fused with RRF."""

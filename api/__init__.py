"""Flask HTTP layer for the dispatch backend."""

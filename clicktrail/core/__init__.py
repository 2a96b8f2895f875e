"""Core infrastructure: configuration, database, cache and observability."""

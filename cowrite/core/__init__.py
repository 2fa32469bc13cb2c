"""Core services: SQLite stores, lock arbiter, history, settings, events, LLM client."""

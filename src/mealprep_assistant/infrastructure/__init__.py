"""Adapters for model providers, SQLite stores and the workflow webhook."""

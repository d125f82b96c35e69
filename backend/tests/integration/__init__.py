"""Integration tests (need PostgreSQL)."""

"""Kanji SRS backend: interval-table review scheduling for kanji flashcards."""

__version__ = "0.1.0"

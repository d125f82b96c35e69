"""Kanji SRS test suite."""

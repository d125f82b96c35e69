"""
Centralized enum definitions for the application.

Usage:
    from kanji_srs.enums import ProgressState, ClockMode
"""

from kanji_srs.enums.learning import ClockMode, ProgressState

__all__ = [
    "ClockMode",
    "ProgressState",
]

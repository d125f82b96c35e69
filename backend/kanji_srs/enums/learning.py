"""
Learning System Enums

Defines enums for the review-scheduling state machine and clock modes.
"""

from enum import Enum


class ProgressState(str, Enum):
    """
    Progress states in the review-scheduling state machine.

    State transitions:
    - NEW → LEARNING (first answer, correct or not)
    - LEARNING → LEARNING (correct below the table maximum, or any wrong answer)
    - LEARNING → RETIRED (correct answer at the table maximum)
    - RETIRED is terminal
    """

    NEW = "new"  # No answers yet (freshly added or reset), due immediately
    LEARNING = "learning"  # Being scheduled through the interval table
    RETIRED = "retired"  # Mastered, never scheduled again


class ClockMode(str, Enum):
    """How one scheduling time-unit maps onto wall-clock time."""

    PRODUCTION = "production"  # One unit = SRS_UNIT_SECONDS
    ACCELERATED = "accelerated"  # One unit = SRS_UNIT_SECONDS / SRS_ACCELERATION_FACTOR

"""
Engine Exceptions

Only session initialization can fail loudly. Recording, statistics,
analysis and correlation degrade to empty or zero results instead.
"""


class BehaviorAnalysisError(Exception):
    """Base class for behavior engine errors."""


class ConfigurationError(BehaviorAnalysisError):
    """Threshold configuration could not be reconciled."""


class InvalidSessionIdError(BehaviorAnalysisError):
    """Session identifier is empty or unusable."""

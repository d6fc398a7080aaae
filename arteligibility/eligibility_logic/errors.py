"""
Exceptions raised inside a single subject's evaluation.

The cohort driver catches these at the subject boundary and converts them to
diagnostics; they never abort a batch.
"""

from typing import Optional


class EligibilityError(Exception):
    """Base class for per-subject evaluation faults."""

    def __init__(self, message: str, subject_id: Optional[str] = None):
        super().__init__(message)
        self.subject_id = subject_id


class InconsistentStateError(EligibilityError):
    """Inputs contradict each other (e.g. TB program member with no TB status)."""


class UpstreamLookupError(EligibilityError):
    """A collaborator lookup (e.g. treatment start date) failed."""

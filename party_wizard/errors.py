"""
MODULE: party_wizard/errors.py
PURPOSE: Exception hierarchy for fatal turn conditions.

Validation problems (bad guest input, out-of-range index) are NOT raised; they
come back as failed ActionResults. Only conditions that must abort the turn
live here.
"""

from __future__ import annotations

from typing import Any, Optional


class WizardError(Exception):
    """Base class for wizard failures that abort a turn."""


class UnknownStepError(WizardError):
    """Raised when a step value is not one of the four wizard steps."""

    def __init__(self, value: Any) -> None:
        self.value = value
        super().__init__(f"Unknown wizard step: {value!r}")


class SessionNotFoundError(WizardError):
    """Raised when a session id does not exist for the requesting owner."""

    def __init__(self, session_id: str, owner_id: Optional[str] = None) -> None:
        self.session_id = session_id
        self.owner_id = owner_id
        super().__init__(f"Session not found: {session_id}")


class SessionClosedError(WizardError):
    """Raised when a turn targets a completed or abandoned session."""

    def __init__(self, session_id: str, status: str) -> None:
        self.session_id = session_id
        self.status = status
        super().__init__(f"Session {session_id} is {status}")


class PersistenceError(WizardError):
    """Raised when the session store cannot be read or written."""


class StepLockedError(WizardError):
    """Raised when navigating to a step beyond the furthest reached step."""

    def __init__(self, step: Any, furthest_step_index: int) -> None:
        self.step = step
        self.furthest_step_index = furthest_step_index
        super().__init__(f"Step {step!r} has not been reached yet")


class SessionIncompleteError(WizardError):
    """Raised when completing a session that is missing required data."""

    def __init__(self, session_id: str, missing: str) -> None:
        self.session_id = session_id
        self.missing = missing
        super().__init__(f"Session {session_id} cannot be completed without {missing}")


__all__ = [
    "WizardError",
    "UnknownStepError",
    "SessionNotFoundError",
    "SessionClosedError",
    "PersistenceError",
    "SessionIncompleteError",
    "StepLockedError",
]

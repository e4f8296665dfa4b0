"""Domain error taxonomy shared by repositories, services and routers."""
from __future__ import annotations


class SleepFeedError(Exception):
    """Base class for expected, caller-facing failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SleepFeedError):
    """Input or state violates a model invariant (e.g. clock-out not after clock-in)."""

    status_code = 422


class NotFoundError(SleepFeedError):
    """Nothing to act on: unknown user, no session to close."""

    status_code = 404


class ConflictError(SleepFeedError):
    """The target already is in the requested state (session closed, already clocked in)."""

    status_code = 409


class TransientError(SleepFeedError):
    """A best-effort dependency (cache, queue) is unavailable."""

    status_code = 503

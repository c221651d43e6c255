"""Error taxonomy of the giveaway engine.

Every engine error carries the HTTP status the API layer answers with; the mapping lives
here so services never import FastAPI.
"""
from __future__ import annotations


class GiveawayError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(GiveawayError):
    """Unknown giveaway, task or participant."""
    status_code = 404


class InvalidStateError(GiveawayError):
    """Operation not allowed in the giveaway's current status."""
    status_code = 400


class ValidationError(GiveawayError):
    """Malformed input, e.g. a non-positive support amount."""
    status_code = 400


class NotEligibleError(GiveawayError):
    status_code = 400


class AlreadySelectedError(GiveawayError):
    status_code = 409


class NoEligibleParticipantsError(InvalidStateError):
    pass


class PersistenceError(GiveawayError):
    status_code = 503


class PersistenceTimeoutError(PersistenceError):
    status_code = 504


class PermissionDeniedError(GiveawayError):
    status_code = 403

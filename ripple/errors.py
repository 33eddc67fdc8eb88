"""
ripple.errors — Error Taxonomy
===============================

Every failure the ledger can surface to a caller.  Duplicate events are
*not* errors — :func:`ripple.services.stats_service.apply_event` reports
them through ``ApplyOutcome.duplicate``.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all Ripple errors."""


class ValidationError(LedgerError):
    """Malformed input.  Rejected before anything is written."""


class InvalidPayload(ValidationError):
    """An activity event failed intrinsic validation (e.g. negative hours)."""


class NotFoundError(LedgerError):
    """A referenced record does not exist."""


class UserNotFound(NotFoundError):
    """The participant named by an event or query has no stats row."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Participant not found: {user_id!r}")
        self.user_id = user_id


class ConcurrencyConflict(LedgerError):
    """Another writer updated the same participant first.

    Transient: the aggregator retries internally with bounded backoff and
    only raises this once its attempts are exhausted.
    """


class StoreUnavailable(LedgerError):
    """The record store could not be reached.  Retry the whole event later."""

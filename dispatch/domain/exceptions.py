"""
Error taxonomy shared by every dispatch operation.

* ``ValidationError`` -- malformed, missing or out-of-range input.
* ``ConflictError``   -- precondition no longer holds (lost accept race,
  terminal trip, driver busy, requester already has an active trip).
* ``ForbiddenError``  -- the actor has no standing on the record.
* ``NotFoundError``   -- unknown trip or driver id.

Each error carries a ``context`` dict so callers can decide what to do next
(e.g. pick another pending job after losing a race).
"""

from __future__ import annotations

from typing import Any


class DispatchError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(DispatchError):
    pass


class ConflictError(DispatchError):
    pass


class ForbiddenError(DispatchError):
    pass


class NotFoundError(DispatchError):
    pass

"""Exceptions raised to callers of the studio service and store."""
from __future__ import annotations


class StudioError(RuntimeError):
    """Base class for rejected player commands and store conflicts."""


class InsufficientFundsError(StudioError):
    def __init__(self, needed: int, available: int) -> None:
        super().__init__(f"Insufficient funds: need ${needed:,}, have ${available:,}")
        self.needed = needed
        self.available = available


class ActorUnavailableError(StudioError):
    """The actor cannot be cast or signed in their current state."""


class UnknownEntityError(StudioError, KeyError):
    """A referenced actor, script, rival, contract or save does not exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class InvalidBidError(StudioError):
    """Bid does not beat the current bid or targets an unknown script."""


class StaleSaveError(StudioError):
    """The save was written by someone else since it was loaded."""


class StoreError(StudioError):
    """The store could not apply a write."""


__all__ = [
    "StudioError",
    "InsufficientFundsError",
    "ActorUnavailableError",
    "UnknownEntityError",
    "InvalidBidError",
    "StaleSaveError",
    "StoreError",
]

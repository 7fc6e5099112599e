from __future__ import annotations


class DomainError(Exception):
    """Base class for errors raised by shimekiri."""


class ValidationError(DomainError):
    pass


class StoreWriteError(DomainError):
    """Persisting the task collection failed."""


class NotifyError(DomainError):
    """Outbound notification could not be delivered."""

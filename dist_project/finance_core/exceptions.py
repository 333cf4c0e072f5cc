"""
Error taxonomy for the finance core.

Input problems are reported with Django's own ``ValidationError`` (raised by
``clean()`` / ``full_clean()`` and by services before anything is written).
Everything below covers the cases where the input looked fine but accepting
it would break a ledger or stock invariant.
"""


class ConsistencyError(Exception):
    """Raised when a write would leave recorded money or goods inconsistent."""
    pass


class UnbalancedJournalError(ConsistencyError):
    """Raised when a JournalEntry fails double-entry balance check."""
    pass


class AlreadyPostedDifferentPayload(ConsistencyError):
    """Raised when a source document is posted again with different lines."""
    pass


class InsufficientStockError(ConsistencyError):
    """Raised when a reservation asks for more than the batch has free."""
    pass


class NegativeStockError(ConsistencyError):
    """Raised when a stock adjustment would drop below zero or below reserved."""
    pass


class NotFoundError(LookupError):
    """Raised when a referenced entity does not exist."""
    pass


class ConcurrencyConflict(Exception):
    """Raised when two writers race for the same row
    (cash movement claimed twice, reservation released twice)."""
    pass

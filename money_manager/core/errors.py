"""
Ledger error taxonomy.

Every failure the settlement engine reports is a LedgerError subclass.
The HTTP layer maps each class to a status code; the core never formats
user-facing messages beyond the exception text.
"""


class LedgerError(Exception):
    """Base class for ledger failures."""
    pass


class NotFoundError(LedgerError):
    """Referenced wallet, debt, user or category is absent."""
    pass


class InsufficientFundsError(LedgerError):
    """A debit hit a missing wallet or a balance below the amount."""
    pass


class AlreadyExistsError(LedgerError):
    """Duplicate wallet, user or category."""
    pass


class IntegrityFaultError(LedgerError):
    """Stored data violates a ledger invariant; the operation aborts."""
    pass


class InvalidDebtStateError(LedgerError):
    """The debt is not in the state the transition requires."""
    pass


class LedgerTimeoutError(LedgerError):
    """The atomic unit exceeded its deadline. Retry the whole operation."""
    pass


class StorageError(LedgerError):
    """Underlying persistence failure."""
    pass

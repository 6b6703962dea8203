# === MODULE PURPOSE ===
# Typed error taxonomy for the portfolio ledger.
# Stores and coordinators raise these; mapping to transport codes is the caller's job.

# === KEY CONCEPTS ===
# - NotFoundError: row absent, owned by someone else, or soft-deleted
# - InvalidStateError: status precondition violated (e.g. transfer from an active position)
# - InvalidArgumentError: business-rule violation in the input (negative amount, self-transfer)
# - StoreUnavailableError: no usable connection pool
# - WriteConflictError: concurrent write detected, safe to retry


class LedgerError(Exception):
    """Base class for all ledger errors."""

    retryable = False


class NotFoundError(LedgerError, LookupError):
    """Row does not exist, is not owned by the caller, or is soft-deleted."""


class InvalidStateError(LedgerError):
    """Status precondition violated."""


class InvalidArgumentError(LedgerError, ValueError):
    """Input violates a business invariant."""


class StoreUnavailableError(LedgerError, ConnectionError):
    """Database pool is missing or unreachable."""


class WriteConflictError(LedgerError):
    """Transaction lost a write conflict after exhausting its retries."""

    retryable = True

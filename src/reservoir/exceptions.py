from __future__ import annotations


# public
class PoolError(Exception):
    """Base class for errors raised by a :class:`~reservoir.pool.Pool`."""


# public
class PoolDestroyed(PoolError):
    """Raised when an operation is attempted on a pool that is destroyed or
    in the process of being destroyed.

    Borrow requests still waiting in the queue when the pool is destroyed are
    rejected with this error as well.
    """

    def __init__(self, message: str = "pool is destroyed"):
        super().__init__(message)


# public
class BorrowTimeout(PoolError, TimeoutError):
    """Raised when a borrow request is not fulfilled within its timeout."""

    def __init__(self, message: str = "timed out waiting for a resource"):
        super().__init__(message)


# public
class MaxOutstandingBorrowsExceeded(PoolError):
    """Raised when a queued borrow request is rejected because the number of
    outstanding borrows exceeds the pool's configured limit.

    Requests are rejected newest first, so the longest-waiting borrowers keep
    their place in the queue.
    """

    def __init__(self, message: str = "max outstanding borrows exceeded"):
        super().__init__(message)


# public
class UnknownResource(PoolError):
    """Raised when an operation is requested on a resource which is not known
    to the pool.

    This indicates a bookkeeping mismatch between the caller and the pool,
    e.g. releasing a resource that was already removed, and should be treated
    as a programming error.
    """

    def __init__(self, message: str = "resource is unknown to this pool"):
        super().__init__(message)

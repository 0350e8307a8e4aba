from __future__ import annotations

import dataclasses
from dataclasses import dataclass


# public
@dataclass(frozen=True)
class PoolOptions:
    """
    Construction-time configuration of a :class:`~reservoir.pool.Pool`.

    All durations are in seconds. Options are validated on instantiation, so
    a pool never has to second-guess its configuration.

    :param max_resources:
        The maximum number of resources the pool may contain.
    :param min_resources:
        The minimum number of resources to keep in the pool.
    :param resource_max_age:
        Age after which a resource is considered stale and is disposed of
        instead of being lent again. ``None`` disables expiry.
    :param max_outstanding_borrows:
        The maximum number of borrow requests which may wait in the queue;
        further requests are rejected. ``None`` allows an unbounded queue.
    :param default_borrow_timeout:
        How long a borrow request may wait for a resource when the caller
        doesn't specify a timeout. ``None`` waits indefinitely.
    :param sync_interval:
        How often the pool is synchronized in the background. During a
        synchronization stale resources are disposed of and new ones created
        to keep the pool at its minimum. ``None`` synchronizes on demand only,
        which is sufficient unless the pool is used very sporadically.
    :raises ValueError:
        If any option is out of range.
    """

    max_resources: int
    min_resources: int = 0
    resource_max_age: float | None = None
    max_outstanding_borrows: int | None = None
    default_borrow_timeout: float | None = None
    sync_interval: float | None = None

    def __post_init__(self):
        if self.min_resources < 0:
            raise ValueError("min_resources must be non-negative")
        if self.max_resources < 1:
            raise ValueError("max_resources must be positive")
        if self.max_resources < self.min_resources:
            raise ValueError(
                f"max_resources ({self.max_resources}) cannot be less than "
                f"min_resources ({self.min_resources})"
            )
        if self.max_outstanding_borrows is not None and self.max_outstanding_borrows < 0:
            raise ValueError("max_outstanding_borrows must be non-negative")
        for name in ("resource_max_age", "default_borrow_timeout", "sync_interval"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive")

    def evolve(self, **changes) -> PoolOptions:
        """Return a validated copy of these options with ``changes`` applied."""
        return dataclasses.replace(self, **changes)

"""Instrumentation for resource pools.

Pools report what they do through two channels, both fire-and-forget:

- :class:`PoolHooks`, a set of optional callbacks bound to a single pool;
- :class:`PoolEvent`, emitted for every pool to handlers registered
  process-wide with :py:meth:`PoolEvent.handler`.

Callbacks are scheduled on the running event loop with
:py:meth:`asyncio.loop.call_soon` rather than invoked inline, so they can
neither block the pool nor alter its control flow. Callbacks may be plain or
coroutine functions; awaitables they return run as tasks. Exceptions raised
by a callback are reported to the loop's exception handler.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from time import perf_counter_ns
from typing import TYPE_CHECKING
from typing import Any
from typing import Callable
from typing import Literal
from typing import Protocol
from typing import runtime_checkable

if TYPE_CHECKING:
    from reservoir.pool import Pool

_callbacks: set[asyncio.Future] = set()


def _invoke(callback: Callable[..., Any], *args) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        # keep a reference until the callback finishes
        future = asyncio.ensure_future(result)
        _callbacks.add(future)
        future.add_done_callback(_settle)


def _settle(future: asyncio.Future) -> None:
    _callbacks.discard(future)
    if not future.cancelled() and (error := future.exception()) is not None:
        future.get_loop().call_exception_handler(
            {
                "message": "Exception in pool event callback",
                "exception": error,
                "future": future,
            }
        )


# public
class CancellationReason(Enum):
    """The reason a queued borrow request was cancelled."""

    DESTROYED = "destroyed"
    """The pool was destroyed."""

    MAX_QUEUED_REQUESTS_EXCEEDED = "max-queued-requests-exceeded"
    """The queue held more requests than ``max_outstanding_borrows``."""

    TIMEOUT = "timeout"
    """The request wasn't fulfilled within its timeout."""


# public
PoolEventType = Literal[
    "resource-created",
    "resource-disposed",
    "resource-borrowed",
    "resource-released",
    "request-enqueued",
    "request-dequeued",
    "request-cancelled",
]
"""
The types of events emitted by a pool.

- "resource-created":
    Emitted when the pool asks its factory for a new resource.
- "resource-disposed":
    Emitted when the pool hands a resource to its finalizer.
- "resource-borrowed":
    Emitted when a resource is lent, immediately or to a queued request.
- "resource-released":
    Emitted when a borrowed resource is returned.
- "request-enqueued":
    Emitted when a borrow request has to wait for a resource.
- "request-dequeued":
    Emitted when a queued request leaves the queue, for any reason.
- "request-cancelled":
    Emitted when a queued request is rejected; carries a
    :class:`CancellationReason`.
"""


# public
@runtime_checkable
class PoolEventHandler(Protocol):
    """Protocol for process-wide pool event handlers."""

    def __call__(
        self,
        event: PoolEvent,
        timestamp: int,
        context: Any | None = None,
    ) -> None:
        """Handle an emitted event.

        :param event:
            The emitted event instance.
        :param timestamp:
            Nanosecond-precision timestamp from perf_counter_ns()
            captured at emission time.
        :param context:
            Optional metadata passed by the emitter.
        """
        ...


# public
class PoolEvent:
    """
    A lifecycle event of a resource pool.

    **Example Usage**::

        from reservoir import PoolEvent


        @PoolEvent.handler("request-cancelled")
        def on_cancelled(event, timestamp, context=None):
            print(f"{event.type}: {event.reason}")

    :param type:
        The type of the event.
    :param pool:
        The pool emitting the event.
    :param reason:
        Why the request was cancelled, for "request-cancelled" events.
    """

    type: PoolEventType
    pool: Pool
    reason: CancellationReason | None

    _handlers: dict[str, list[PoolEventHandler]] = {}
    """Class-level handler registry shared across all pools."""

    def __init__(
        self,
        type: PoolEventType,
        /,
        pool: Pool,
        reason: CancellationReason | None = None,
    ) -> None:
        self.type = type
        self.pool = pool
        self.reason = reason

    def emit(self, context: Any | None = None) -> None:
        """Emit this event to all handlers registered for its type.

        Handlers are scheduled on the running event loop in registration
        order. If no handlers are registered for this event type, this
        method returns immediately.

        :param context:
            Optional metadata passed to handlers.
        """
        if handlers := self._handlers.get(self.type):
            timestamp = perf_counter_ns()
            loop = asyncio.get_running_loop()
            for handler in handlers:
                loop.call_soon(_invoke, handler, self, timestamp, context)

    @classmethod
    def handler(
        cls, *event_types: PoolEventType
    ) -> Callable[[PoolEventHandler], PoolEventHandler]:
        """Decorator for registering event handlers.

        :param event_types:
            One or more event types to handle.
        :returns:
            Decorator function that registers the handler.
        """

        def decorator(fn: PoolEventHandler) -> PoolEventHandler:
            for event_type in event_types:
                cls._handlers.setdefault(event_type, []).append(fn)
            return fn

        return decorator


# public
@dataclass(frozen=True)
class PoolHooks:
    """
    Optional per-pool instrumentation callbacks.

    :param on_create:
        Called when a resource creation is started.
    :param on_dispose:
        Called when a resource disposal is started.
    :param on_borrow:
        Called when a resource is lent.
    :param on_release:
        Called when a borrowed resource is returned.
    :param on_request_enqueued:
        Called when a borrow request is queued for later fulfilment.
    :param on_request_dequeued:
        Called when a queued request leaves the queue, whether fulfilled or
        cancelled.
    :param on_request_cancelled:
        Called with the :class:`CancellationReason` when a queued request is
        cancelled.
    """

    on_create: Callable[[], Any] | None = None
    on_dispose: Callable[[], Any] | None = None
    on_borrow: Callable[[], Any] | None = None
    on_release: Callable[[], Any] | None = None
    on_request_enqueued: Callable[[], Any] | None = None
    on_request_dequeued: Callable[[], Any] | None = None
    on_request_cancelled: Callable[[CancellationReason], Any] | None = None

    def dispatch(self, event: PoolEvent) -> None:
        """Schedule the callback matching ``event``, if one is set.

        :param event:
            The event to deliver.
        """
        match event.type:
            case "resource-created":
                hook, args = self.on_create, ()
            case "resource-disposed":
                hook, args = self.on_dispose, ()
            case "resource-borrowed":
                hook, args = self.on_borrow, ()
            case "resource-released":
                hook, args = self.on_release, ()
            case "request-enqueued":
                hook, args = self.on_request_enqueued, ()
            case "request-dequeued":
                hook, args = self.on_request_dequeued, ()
            case "request-cancelled":
                hook, args = self.on_request_cancelled, (event.reason,)
            case _:
                raise ValueError(f"Unknown pool event type: {event.type}")
        if hook is not None:
            asyncio.get_running_loop().call_soon(_invoke, hook, *args)

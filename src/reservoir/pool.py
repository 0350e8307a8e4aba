from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass
from time import monotonic
from typing import Any
from typing import Callable
from typing import Coroutine
from typing import Final
from typing import Generic
from typing import TypeVar

from reservoir.deferred import Deferred
from reservoir.event import CancellationReason
from reservoir.event import PoolEvent
from reservoir.event import PoolEventType
from reservoir.event import PoolHooks
from reservoir.exceptions import BorrowTimeout
from reservoir.exceptions import MaxOutstandingBorrowsExceeded
from reservoir.exceptions import PoolDestroyed
from reservoir.exceptions import UnknownResource
from reservoir.options import PoolOptions
from reservoir.typing import Borrowed
from reservoir.typing import Release
from reservoir.typing import ResourceFactory
from reservoir.typing import ResourceFinalizer
from reservoir.typing import Undefined
from reservoir.typing import UndefinedType

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ResourceRecord(Generic[T]):
    resource: T
    created_at: float


@dataclass(eq=False)
class BorrowRequest(Generic[T]):
    deferred: Deferred[Borrowed[T]]
    enqueued_at: float


# public
class Lease(Generic[T]):
    """
    A single-use async context manager borrowing a resource from a pool.

    The resource is borrowed on entry and released on exit. A lease cannot be
    entered twice, and its resource cannot be released twice.

    :param pool:
        The :py:class:`Pool` to borrow from.
    :param timeout:
        Borrow timeout in seconds; see :py:meth:`Pool.borrow`.
    """

    def __init__(self, pool: Pool[T], timeout: float | None | UndefinedType):
        self._pool = pool
        self._timeout = timeout
        self._release: Release | None = None
        self._acquired = False
        self._released = False

    async def __aenter__(self) -> T:
        """
        Borrow the resource.

        :returns:
            The borrowed resource.
        :raises RuntimeError:
            If the lease was already entered.
        """
        if self._acquired:
            raise RuntimeError("Cannot re-enter a lease that has already been entered")

        self._acquired = True
        try:
            resource, self._release = await self._pool.borrow(timeout=self._timeout)
        except Exception:
            self._acquired = False
            raise
        return resource

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Release the resource back to the pool."""
        await self._release_resource()

    async def _release_resource(self):
        if not self._acquired or self._release is None:
            raise RuntimeError("Cannot release a lease that was not entered")
        if self._released:
            raise RuntimeError("Cannot release a lease that has already been released")

        self._released = True
        await self._release()


# public
class Pool(Generic[T]):
    """
    An asynchronous pool of expensive-to-create resources.

    The pool keeps between ``min_resources`` and ``max_resources`` resources,
    created with ``factory`` and torn down with ``finalizer``, both of which
    may be plain or coroutine functions. Consumers borrow a resource and give
    it back with the release function paired with it. When no resource is
    idle, borrow requests wait in a strictly first-in, first-out queue until a
    resource is created or released for them.

    Population is maintained by a background synchronization pass, triggered
    whenever a request has to wait, a resource is disposed of, and
    periodically if ``sync_interval`` is configured. Only one pass runs at a
    time; triggers arriving mid-pass cause a follow-up pass.

    The pool must be created while an event loop is running.

    **Borrowing explicitly:**

    .. code-block:: python

        pool = Pool(connect, close, options=PoolOptions(max_resources=4))
        connection, release = await pool.borrow(timeout=5)
        try:
            await connection.execute("SELECT 1")
        finally:
            await release()
        await pool.destroy()

    **Leasing with a context manager:**

    .. code-block:: python

        async with Pool(connect, close, options=PoolOptions(max_resources=4)) as pool:
            async with pool.get() as connection:
                await connection.execute("SELECT 1")

    :param factory:
        Creates new resources (sync or async).
    :param finalizer:
        Optional cleanup function for disposed resources (sync or async).
    :param options:
        The :py:class:`PoolOptions` of this pool.
    :param hooks:
        Optional per-pool instrumentation callbacks.
    """

    @dataclass
    class Stats:
        """
        Statistics about the current state of the pool.

        :param total_resources:
            Number of resources owned by the pool, idle or on loan.
        :param idle_resources:
            Number of resources available for immediate lending.
        :param borrowed_resources:
            Number of resources currently on loan.
        :param outstanding_borrows:
            Number of borrow requests waiting for a resource.
        """

        total_resources: int
        idle_resources: int
        borrowed_resources: int
        outstanding_borrows: int

    _known: Final[dict[int, ResourceRecord[T]]]
    _idle: Final[deque[T]]
    _waiting: Final[deque[BorrowRequest[T]]]
    _background: Final[set[asyncio.Task]]

    def __init__(
        self,
        factory: ResourceFactory[T],
        finalizer: ResourceFinalizer[T] | None = None,
        *,
        options: PoolOptions,
        hooks: PoolHooks | None = None,
    ):
        self._factory = factory
        self._finalizer = finalizer
        self._options = options
        self._hooks = hooks if hooks is not None else PoolHooks()
        self._destroying = False

        # keyed by id() so resources needn't be hashable; records keep the
        # resources alive, so ids are never reused while known
        self._known = {}
        self._idle = deque()
        self._waiting = deque()

        self._syncing: asyncio.Task | None = None
        self._resync = False
        self._background = set()

        loop = asyncio.get_running_loop()
        self._sync_timer: asyncio.Task | None = None
        if options.sync_interval is not None:
            self._sync_timer = loop.create_task(
                self._sync_periodically(options.sync_interval)
            )
        loop.call_soon(self._trigger_sync)

    async def __aenter__(self) -> Pool[T]:
        """Async context manager entry.

        :returns:
            The pool itself.
        """
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit - destroy the pool."""
        await self.destroy()

    @property
    def options(self) -> PoolOptions:
        """The options this pool was created with."""
        return self._options

    @property
    def destroyed(self) -> bool:
        """Whether :py:meth:`destroy` has been called."""
        return self._destroying

    @property
    def outstanding_borrows(self) -> int:
        """Number of borrow requests waiting for a resource."""
        return len(self._waiting)

    @property
    def stats(self) -> Stats:
        """
        Return pool statistics.

        :returns:
            :py:class:`Pool.Stats` describing the current state.
        """
        return self.Stats(
            total_resources=len(self._known),
            idle_resources=len(self._idle),
            borrowed_resources=len(self._known) - len(self._idle),
            outstanding_borrows=len(self._waiting),
        )

    def get(self, *, timeout: float | None | UndefinedType = Undefined) -> Lease[T]:
        """
        Get a lease to be used as an async context manager.

        :param timeout:
            Borrow timeout in seconds; see :py:meth:`borrow`.
        :returns:
            :py:class:`Lease` borrowing a resource on entry and releasing it
            on exit.
        """
        return Lease(self, timeout)

    async def borrow(
        self, *, timeout: float | None | UndefinedType = Undefined
    ) -> Borrowed[T]:
        """
        Borrow a resource from the pool.

        Returns immediately if a resource is idle; otherwise the request is
        queued behind every earlier request until a resource becomes
        available.

        :param timeout:
            Seconds to wait for a resource. Defaults to the pool's
            ``default_borrow_timeout``; ``None`` waits indefinitely.
        :returns:
            The resource, and a coroutine function to call to return it.
        :raises PoolDestroyed:
            If the pool is destroyed before the request is fulfilled.
        :raises BorrowTimeout:
            If the request isn't fulfilled within ``timeout``.
        :raises MaxOutstandingBorrowsExceeded:
            If the queue holds more requests than the pool allows.
        """
        if self._destroying:
            raise PoolDestroyed()

        for _ in range(2):
            if not self._idle:
                break
            resource = self._idle.popleft()
            if self._is_expired(self._known[id(resource)]):
                self._forget(resource)
                self._spawn(self._dispose(resource))
                continue
            self._emit("resource-borrowed")
            return resource, self._releaser(resource)

        request: BorrowRequest[T] = BorrowRequest(Deferred(), enqueued_at=monotonic())
        self._waiting.append(request)
        self._emit("request-enqueued")

        # the sync pass may create a resource for this request or reject it
        # for exceeding the queue limit; don't wait for it here
        self._trigger_sync()

        if timeout is Undefined:
            timeout = self._options.default_borrow_timeout
        timer = None
        if timeout is not None:
            timer = asyncio.get_running_loop().call_later(
                timeout, self._expire_request, request
            )
        try:
            return await request.deferred
        except asyncio.CancelledError:
            self._withdraw_request(request)
            raise
        finally:
            if timer is not None:
                timer.cancel()

    async def remove(self, resource: T) -> None:
        """
        Remove a resource from the pool and dispose of it.

        The resource may be idle or on loan. A borrower holding a removed
        resource is not notified, and releasing it afterwards raises
        :py:class:`UnknownResource`. A resource the pool doesn't know is
        still handed to the finalizer.

        :param resource:
            The resource to remove.
        """
        record = self._known.get(id(resource))
        if record is not None and record.resource is resource:
            self._forget(resource)
        self._trigger_sync()
        await self._dispose(resource)

    async def destroy(self) -> None:
        """
        Destroy the pool.

        Rejects every queued borrow request with :py:class:`PoolDestroyed`,
        disposes of every idle resource and waits for in-flight creations
        and disposals to finish. Resources on loan are disposed of when they
        are released. Destroying a destroyed pool does nothing.

        :raises ExceptionGroup:
            If the finalizer failed for any idle resource. The pool is fully
            torn down regardless.
        """
        if self._destroying:
            return
        self._destroying = True
        logger.debug(f"Destroying pool with {len(self._known)} resource(s)")

        if self._sync_timer is not None:
            self._sync_timer.cancel()

        while self._waiting:
            request = self._waiting.popleft()
            self._emit("request-cancelled", CancellationReason.DESTROYED)
            self._emit("request-dequeued")
            request.deferred.reject(PoolDestroyed())

        idle = list(self._idle)
        for resource in idle:
            self._forget(resource)
        disposals = [self._dispose(resource) for resource in idle]

        pending: list[Any] = [*disposals, *self._background]
        if self._syncing is not None:
            pending.append(self._syncing)
        if self._sync_timer is not None:
            pending.append(self._sync_timer)
        results = await asyncio.gather(*pending, return_exceptions=True)

        # withdrawn borrowers may have spawned releases while tearing down
        while self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        errors = [e for e in results[: len(disposals)] if isinstance(e, Exception)]
        if errors:
            for error in errors:
                logger.warning(f"Failed to dispose resource: {error!r}", exc_info=error)
            raise ExceptionGroup(f"failed to dispose {len(errors)} resources", errors)

    def _releaser(self, resource: T) -> Release:
        released = False

        async def release() -> None:
            nonlocal released
            if released:
                raise RuntimeError(
                    "Cannot release a resource that has already been released"
                )
            released = True
            await self._return_resource(resource)

        return release

    async def _return_resource(self, resource: T) -> None:
        record = self._known.get(id(resource))
        if record is None or record.resource is not resource:
            raise UnknownResource()
        self._emit("resource-released")

        if self._destroying or self._is_expired(record):
            self._forget(resource)
            self._trigger_sync()
            await self._dispose(resource)
            return

        self._lend(resource)

    def _add_resource(self, resource: T) -> None:
        if id(resource) in self._known:
            raise RuntimeError("Cannot add a resource that already exists in the pool")
        self._known[id(resource)] = ResourceRecord(resource, monotonic())
        self._lend(resource)

    def _lend(self, resource: T) -> None:
        while self._waiting:
            request = self._waiting.popleft()
            self._emit("request-dequeued")
            # the borrower was cancelled but hasn't withdrawn its request yet
            if request.deferred.done():
                continue
            self._emit("resource-borrowed")
            request.deferred.resolve((resource, self._releaser(resource)))
            return

        self._idle.append(resource)

    def _forget(self, resource: T) -> ResourceRecord[T]:
        record = self._known.get(id(resource))
        if record is None or record.resource is not resource:
            raise UnknownResource()
        del self._known[id(resource)]
        for index, idle in enumerate(self._idle):
            if idle is resource:
                del self._idle[index]
                break
        return record

    def _is_expired(self, record: ResourceRecord[T]) -> bool:
        max_age = self._options.resource_max_age
        return max_age is not None and monotonic() - record.created_at >= max_age

    def _expire_request(self, request: BorrowRequest[T]) -> None:
        if request not in self._waiting:
            return
        self._waiting.remove(request)
        self._emit("request-cancelled", CancellationReason.TIMEOUT)
        self._emit("request-dequeued")
        request.deferred.reject(BorrowTimeout())

    def _withdraw_request(self, request: BorrowRequest[T]) -> None:
        if request in self._waiting:
            self._waiting.remove(request)
            self._emit("request-dequeued")
            return
        future = request.deferred.future
        if future.done() and not future.cancelled() and future.exception() is None:
            # lent after the borrower was cancelled; give it back
            _, release = future.result()
            self._spawn(release())

    async def _create(self) -> None:
        self._emit("resource-created")
        resource = await self._await(self._factory)
        if self._destroying:
            await self._dispose(resource)
            return
        logger.debug(f"Created resource {resource!r}")
        self._add_resource(resource)

    async def _dispose(self, resource: T) -> None:
        self._emit("resource-disposed")
        logger.debug(f"Disposing of resource {resource!r}")
        if self._finalizer is not None:
            await self._await(self._finalizer, resource)

    def _trigger_sync(self) -> None:
        if self._destroying:
            return
        if self._syncing is not None and not self._syncing.done():
            self._resync = True
            return
        self._syncing = asyncio.get_running_loop().create_task(self._run_sync())

    async def _run_sync(self) -> None:
        while True:
            self._resync = False
            again = await self._sync()
            if self._destroying or not (again or self._resync):
                return

    async def _sync(self) -> bool:
        options = self._options
        work: list[Coroutine] = []

        # expire stale idle resources
        for resource in list(self._idle):
            if self._is_expired(self._known[id(resource)]):
                self._forget(resource)
                work.append(self._dispose(resource))

        # serve waiting requests from what is left idle
        while self._idle and self._waiting:
            self._lend(self._idle.popleft())

        # grow the pool if allowed and necessary
        current = len(self._known)
        target = max(
            options.min_resources,
            min(current + len(self._waiting), options.max_resources),
        )
        deficit = 0 if self._destroying else max(target - current, 0)
        creations = [self._create() for _ in range(deficit)]

        # reject queued requests over the queue limit, newest first
        limit = options.max_outstanding_borrows
        if limit is not None:
            while len(self._waiting) > limit:
                request = self._waiting.pop()
                self._emit(
                    "request-cancelled", CancellationReason.MAX_QUEUED_REQUESTS_EXCEEDED
                )
                self._emit("request-dequeued")
                request.deferred.reject(MaxOutstandingBorrowsExceeded())

        if creations or work:
            logger.debug(
                f"Syncing pool: creating {len(creations)}, "
                f"disposing of {len(work)} resource(s)"
            )
        results = await asyncio.gather(*creations, *work, return_exceptions=True)

        failed = False
        for result in results:
            if isinstance(result, Exception):
                failed = True
                logger.warning(f"Pool sync operation failed: {result!r}", exc_info=result)

        # demand may have arrived while this pass was running
        return (
            not failed
            and bool(self._waiting)
            and len(self._known) < options.max_resources
        )

    async def _sync_periodically(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self._trigger_sync()

    def _spawn(self, coroutine: Coroutine) -> None:
        task = asyncio.get_running_loop().create_task(coroutine)
        self._background.add(task)
        task.add_done_callback(self._reap)

    def _reap(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and (error := task.exception()) is not None:
            logger.warning(f"Background pool operation failed: {error!r}", exc_info=error)

    def _emit(self, type: PoolEventType, reason: CancellationReason | None = None):
        event = PoolEvent(type, pool=self, reason=reason)
        event.emit()
        self._hooks.dispatch(event)

    async def _await(self, func: Callable, *args) -> Any:
        """
        Call a function that might be sync or async.

        :param func:
            The function to call.
        :param args:
            Arguments to pass to the function.
        :returns:
            The result of the function call, awaited if it is awaitable.
        """
        result = func(*args)
        if inspect.isawaitable(result):
            return await result
        return result

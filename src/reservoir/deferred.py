from __future__ import annotations

import asyncio
from typing import Generator
from typing import Generic
from typing import TypeVar

T = TypeVar("T")


# public
class Deferred(Generic[T]):
    """
    A single-assignment result cell that can be awaited.

    Wraps an :py:class:`asyncio.Future` whose outcome is decided by whichever
    of :py:meth:`resolve` or :py:meth:`reject` is called first. Later calls are
    ignored and report that they lost the race by returning ``False``, so
    competing writers (e.g. a fulfilment and a timeout) never need to check
    each other's state.

    .. note::
        Must be instantiated while an event loop is running.

    **Example**::

        deferred = Deferred[int]()
        asyncio.get_running_loop().call_soon(deferred.resolve, 3)
        assert await deferred == 3
    """

    def __init__(self):
        self._future: asyncio.Future[T] = asyncio.get_running_loop().create_future()

    def __await__(self) -> Generator[None, None, T]:
        return self._future.__await__()

    @property
    def future(self) -> asyncio.Future[T]:
        """The underlying future."""
        return self._future

    def done(self) -> bool:
        """Whether the deferred has been resolved, rejected or cancelled."""
        return self._future.done()

    def resolve(self, value: T) -> bool:
        """
        Settle the deferred with a value.

        :param value:
            The result delivered to awaiters.
        :returns:
            ``True`` if this call settled the deferred, ``False`` if it was
            already settled.
        """
        if self._future.done():
            return False
        self._future.set_result(value)
        return True

    def reject(self, error: BaseException) -> bool:
        """
        Settle the deferred with an exception.

        :param error:
            The exception raised to awaiters.
        :returns:
            ``True`` if this call settled the deferred, ``False`` if it was
            already settled.
        """
        if self._future.done():
            return False
        self._future.set_exception(error)
        return True

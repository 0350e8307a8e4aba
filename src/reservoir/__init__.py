from importlib.metadata import PackageNotFoundError
from importlib.metadata import version

from reservoir._logging import __log_format__
from reservoir._logging import configure_logging
from reservoir.deferred import Deferred
from reservoir.event import CancellationReason
from reservoir.event import PoolEvent
from reservoir.event import PoolEventHandler
from reservoir.event import PoolEventType
from reservoir.event import PoolHooks
from reservoir.exceptions import BorrowTimeout
from reservoir.exceptions import MaxOutstandingBorrowsExceeded
from reservoir.exceptions import PoolDestroyed
from reservoir.exceptions import PoolError
from reservoir.exceptions import UnknownResource
from reservoir.options import PoolOptions
from reservoir.pool import Lease
from reservoir.pool import Pool
from reservoir.typing import Borrowed
from reservoir.typing import Release
from reservoir.typing import ResourceFactory
from reservoir.typing import ResourceFinalizer

try:
    __version__ = version("reservoir")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = [
    # Pool
    "Lease",
    "Pool",
    "PoolOptions",
    # Errors
    "BorrowTimeout",
    "MaxOutstandingBorrowsExceeded",
    "PoolDestroyed",
    "PoolError",
    "UnknownResource",
    # Instrumentation
    "CancellationReason",
    "PoolEvent",
    "PoolEventHandler",
    "PoolEventType",
    "PoolHooks",
    "configure_logging",
    # Primitives
    "Deferred",
    # Typing
    "Borrowed",
    "Release",
    "ResourceFactory",
    "ResourceFinalizer",
]

for symbol in __all__:
    attribute = globals().get(symbol)
    try:
        if attribute and "reservoir" in attribute.__module__.split("."):
            # Set the module to reflect imports of the symbol
            attribute.__module__ = __name__
    except (AttributeError, TypeError):
        continue

from __future__ import annotations

from enum import Enum
from typing import Awaitable
from typing import Callable
from typing import Final
from typing import TypeAlias
from typing import TypeVar
from typing import final

T = TypeVar("T")


@final
class UndefinedType(Enum):
    Undefined = "Undefined"


Undefined: Final = UndefinedType.Undefined


# public
ResourceFactory: TypeAlias = Callable[[], T | Awaitable[T]]
"""Callable producing a new resource, either directly or as an awaitable."""

# public
ResourceFinalizer: TypeAlias = Callable[[T], None | Awaitable[None]]
"""Callable tearing down a resource, either directly or as an awaitable."""

# public
Release: TypeAlias = Callable[[], Awaitable[None]]
"""Coroutine function returning a borrowed resource to its pool."""

# public
Borrowed: TypeAlias = tuple[T, Release]
"""A borrowed resource paired with the function that returns it."""

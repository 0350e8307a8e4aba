import asyncio
from collections import Counter
from unittest.mock import Mock

from reservoir.event import PoolHooks


class CountingFactory:
    """Factory producing distinct mock resources, optionally after a delay."""

    def __init__(self, delay: float = 0):
        self.delay = delay
        self.created: list[Mock] = []

    @property
    def call_count(self):
        return len(self.created)

    async def __call__(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        resource = Mock(name=f"resource-{len(self.created)}")
        self.created.append(resource)
        return resource


class HookRecorder:
    """Records every pool hook invocation."""

    def __init__(self):
        self.counts = Counter()
        self.cancelled = []

    @property
    def hooks(self) -> PoolHooks:
        def count(name):
            return lambda: self.counts.update([name])

        return PoolHooks(
            on_create=count("create"),
            on_dispose=count("dispose"),
            on_borrow=count("borrow"),
            on_release=count("release"),
            on_request_enqueued=count("enqueued"),
            on_request_dequeued=count("dequeued"),
            on_request_cancelled=self.cancelled.append,
        )


async def settle(iterations: int = 5):
    """Let scheduled callbacks and ready tasks run."""
    for _ in range(iterations):
        await asyncio.sleep(0)

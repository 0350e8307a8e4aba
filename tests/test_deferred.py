import asyncio

import pytest

from reservoir.deferred import Deferred


class TestDeferred:
    @pytest.mark.asyncio
    async def test_resolve_delivers_value(self):
        """Test awaiting a resolved deferred returns its value.

        Given:
            A pending deferred
        When:
            It is resolved from a scheduled callback
        Then:
            Should return the value to the awaiter
        """
        # Arrange
        deferred = Deferred[int]()
        asyncio.get_running_loop().call_soon(deferred.resolve, 3)

        # Act
        result = await deferred

        # Assert
        assert result == 3
        assert deferred.done()

    @pytest.mark.asyncio
    async def test_reject_raises_error(self):
        """Test awaiting a rejected deferred raises its error.

        Given:
            A pending deferred
        When:
            It is rejected
        Then:
            Should raise the error to the awaiter
        """
        # Arrange
        deferred = Deferred()

        # Act
        deferred.reject(LookupError("gone"))

        # Assert
        with pytest.raises(LookupError, match="gone"):
            await deferred

    @pytest.mark.asyncio
    async def test_first_settlement_wins(self):
        """Test a deferred can only be settled once.

        Given:
            A deferred resolved with a value
        When:
            It is resolved again and then rejected
        Then:
            Should report both later calls as lost and keep the first value
        """
        # Arrange
        deferred = Deferred()

        # Act
        first = deferred.resolve("first")
        second = deferred.resolve("second")
        rejected = deferred.reject(RuntimeError())

        # Assert
        assert (first, second, rejected) == (True, False, False)
        assert await deferred == "first"

    @pytest.mark.asyncio
    async def test_cancelled_future_counts_as_done(self):
        """Test a cancelled future can no longer be settled.

        Given:
            A deferred whose future was cancelled
        When:
            It is resolved
        Then:
            Should report the call as lost
        """
        # Arrange
        deferred = Deferred()
        deferred.future.cancel()

        # Act & Assert
        assert deferred.done()
        assert not deferred.resolve(1)

    def test_requires_running_loop(self):
        """Test a deferred can't be created outside an event loop.

        Given:
            No running event loop
        When:
            A deferred is instantiated
        Then:
            Should raise RuntimeError
        """
        with pytest.raises(RuntimeError):
            Deferred()

import pytest
from hypothesis import given
from hypothesis import strategies as st

from reservoir.options import PoolOptions


class TestPoolOptions:
    def test_defaults(self):
        """Test only max_resources is required.

        Given:
            A max_resources value
        When:
            PoolOptions is instantiated with nothing else
        Then:
            Should default to an empty, unbounded, timeless pool
        """
        # Act
        options = PoolOptions(max_resources=4)

        # Assert
        assert options.min_resources == 0
        assert options.resource_max_age is None
        assert options.max_outstanding_borrows is None
        assert options.default_borrow_timeout is None
        assert options.sync_interval is None

    @given(
        min_resources=st.integers(min_value=0, max_value=100),
        spare=st.integers(min_value=0, max_value=100),
    )
    def test_accepts_max_not_less_than_min(self, min_resources, spare):
        """Test any non-negative minimum below the maximum is valid.

        Given:
            A minimum and a maximum that is at least as large (and positive)
        When:
            PoolOptions is instantiated
        Then:
            Should keep both values
        """
        # Arrange
        max_resources = max(min_resources + spare, 1)

        # Act
        options = PoolOptions(max_resources=max_resources, min_resources=min_resources)

        # Assert
        assert options.max_resources == max_resources
        assert options.min_resources == min_resources

    @pytest.mark.parametrize(
        "kwargs, message",
        [
            ({"max_resources": 1, "min_resources": -1}, "min_resources must be"),
            ({"max_resources": 0}, "max_resources must be positive"),
            ({"max_resources": 2, "min_resources": 3}, r"max_resources \(2\)"),
            (
                {"max_resources": 1, "max_outstanding_borrows": -1},
                "max_outstanding_borrows must be",
            ),
            ({"max_resources": 1, "resource_max_age": 0}, "resource_max_age"),
            (
                {"max_resources": 1, "default_borrow_timeout": -1},
                "default_borrow_timeout",
            ),
            ({"max_resources": 1, "sync_interval": 0}, "sync_interval"),
        ],
    )
    def test_rejects_out_of_range_values(self, kwargs, message):
        """Test invalid options are rejected on instantiation.

        Given:
            An out-of-range option
        When:
            PoolOptions is instantiated
        Then:
            Should raise ValueError naming the option
        """
        with pytest.raises(ValueError, match=message):
            PoolOptions(**kwargs)

    def test_zero_outstanding_borrows_allowed(self):
        """Test a zero-length queue is a valid configuration.

        Given:
            max_outstanding_borrows=0
        When:
            PoolOptions is instantiated
        Then:
            Should accept it
        """
        assert PoolOptions(max_resources=1, max_outstanding_borrows=0)

    def test_evolve_validates_changes(self):
        """Test evolve returns a validated copy.

        Given:
            Valid options
        When:
            They are evolved with a valid and then an invalid change
        Then:
            Should return a new instance for the former and raise for the
            latter, leaving the original untouched
        """
        # Arrange
        options = PoolOptions(max_resources=4, min_resources=2)

        # Act
        evolved = options.evolve(max_resources=8)

        # Assert
        assert evolved == PoolOptions(max_resources=8, min_resources=2)
        assert options.max_resources == 4
        with pytest.raises(ValueError):
            options.evolve(max_resources=1)

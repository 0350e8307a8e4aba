import logging
import os

import pytest

from reservoir._logging import ReservoirLogFilter
from reservoir._logging import configure_logging
from reservoir._logging import handler


@pytest.fixture
def reservoir_logger():
    logger = logging.getLogger("reservoir")
    level = logger.level
    yield logger
    logger.removeHandler(handler)
    logger.setLevel(level)


def make_record(pathname):
    return logging.LogRecord(
        name="reservoir.pool",
        level=logging.INFO,
        pathname=pathname,
        lineno=42,
        msg="message",
        args=(),
        exc_info=None,
    )


class TestReservoirLogFilter:
    def test_ref_relative_to_cwd(self):
        """Test records from files below the cwd get a relative ref.

        Given:
            A record emitted from a file beneath the working directory
        When:
            The filter is applied
        Then:
            Should set ref to the relative path and line, keeping the record
        """
        # Arrange
        record = make_record(os.path.join(os.getcwd(), "src", "module.py"))

        # Act
        kept = ReservoirLogFilter().filter(record)

        # Assert
        assert kept
        assert record.ref == f"{os.path.join('src', 'module.py')}:42"

    def test_ref_abbreviated_outside_cwd(self):
        """Test records from elsewhere get an abbreviated ref.

        Given:
            A record emitted from a file outside the working directory
        When:
            The filter is applied
        Then:
            Should set ref to the file's basename and line
        """
        # Arrange
        record = make_record(os.path.join(os.sep, "elsewhere", "module.py"))

        # Act
        ReservoirLogFilter().filter(record)

        # Assert
        assert record.ref == ".../module.py:42"


class TestConfigureLogging:
    def test_attaches_handler_once(self, reservoir_logger):
        """Test repeated configuration doesn't duplicate output.

        Given:
            The reservoir logger
        When:
            configure_logging is called twice with different levels
        Then:
            Should attach the handler once and apply the latest level
        """
        # Act
        configure_logging(logging.INFO)
        logger = configure_logging(logging.DEBUG)

        # Assert
        assert logger is reservoir_logger
        assert logger.handlers.count(handler) == 1
        assert logger.level == logging.DEBUG

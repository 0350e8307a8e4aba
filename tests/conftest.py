import debugpy
import pytest
from helpers import CountingFactory
from helpers import HookRecorder

from reservoir.event import PoolEvent


@pytest.hookimpl(tryfirst=True)
def pytest_configure(config):
    if config.getoption("--wait-for-debugger"):
        print("Waiting for debugger to attach...")
        debugpy.listen(("0.0.0.0", 5678))
        debugpy.wait_for_client()
        print("Debugger attached.")


def pytest_addoption(parser):
    parser.addoption(
        "-D",
        "--wait-for-debugger",
        action="store_true",
        default=False,
        help="Wait for a debugpy client to attach before running tests",
    )


@pytest.fixture
def factory():
    return CountingFactory()


@pytest.fixture
def slow_factory():
    return CountingFactory(delay=0.01)


@pytest.fixture
def finalizer(mocker):
    return mocker.AsyncMock()


@pytest.fixture
def recorder():
    return HookRecorder()


@pytest.fixture(autouse=True)
def clear_event_handlers():
    """Isolate tests from process-wide pool event handlers."""
    PoolEvent._handlers.clear()
    yield
    PoolEvent._handlers.clear()

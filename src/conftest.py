"""Root conftest: test environment, structlog routing and fixtures shared by the bridge tests."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from chessbreak.tests.mocks import FakeClock, RecordingSink
from shared.storage import MemoryKeyValueStorage

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# Lockout and page events go through stdlib logging so caplog sees them.
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=False,
)


@pytest.fixture(autouse=True)
def _clear_log_context():
    """A page connection's bound connection_id must not leak into the next test."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def options_storage():
    """The options ("sync") storage area."""
    return MemoryKeyValueStorage()


@pytest.fixture
def session_storage():
    """The session ("local") storage area."""
    return MemoryKeyValueStorage()

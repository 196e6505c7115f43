"""Shared test fixtures for printer registry tests."""

import logging
import os
from collections.abc import AsyncGenerator

import pytest

# IMPORTANT: Set environment variables BEFORE any app imports
# This must happen before settings/config are loaded
os.environ["LOG_TO_FILE"] = "false"
os.environ["DEBUG"] = "false"

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from printer_registry.core.config import Settings, settings  # noqa: E402
from printer_registry.core.database import create_engine, create_session_factory, init_db  # noqa: E402
from printer_registry.core.views import ViewPair  # noqa: E402
from printer_registry.services.printer_manager import PrinterManager  # noqa: E402

settings.log_to_file = False


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite file."""
    return Settings(
        base_dir=tmp_path,
        log_dir=tmp_path / "logs",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'printers.db'}",
        log_to_file=False,
        commit_timeout_seconds=5.0,
        sqlite_busy_timeout=5.0,
    )


@pytest.fixture
async def test_engine(test_settings):
    """Create a test database engine with the schema in place."""
    engine = create_engine(test_settings)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A plain session, independent of any view pair."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def views(session_factory) -> AsyncGenerator[ViewPair, None]:
    """An opened view pair owned by the test's event loop."""
    pair = ViewPair(session_factory)
    await pair.open()
    yield pair
    await pair.close()


@pytest.fixture
def manager(views) -> PrinterManager:
    return PrinterManager(views)


# ============================================================================
# Factory Fixtures for Test Data
# ============================================================================


@pytest.fixture
def printer_factory(manager):
    """Factory to add test printers through the manager."""
    _counter = [0]  # Use list to allow mutation in nested function

    async def _create_printer(**kwargs):
        _counter[0] += 1
        counter = _counter[0]

        defaults = {
            "name": f"Printer {counter}",
            "hostname": f"http://192.168.1.{100 + counter}",
            "api_key": f"APIKEY{counter:04d}",
        }
        defaults.update(kwargs)
        return await manager.add_printer(**defaults)

    return _create_printer


# ============================================================================
# Log Capture Fixtures for Error Detection
# ============================================================================


class LogCapture(logging.Handler):
    """Handler that captures log records for testing."""

    def __init__(self):
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord):
        self.records.append(record)

    def clear(self):
        self.records.clear()

    def get_errors(self) -> list[logging.LogRecord]:
        """Get all ERROR and CRITICAL level records."""
        return [r for r in self.records if r.levelno >= logging.ERROR]

    def has_errors(self) -> bool:
        return len(self.get_errors()) > 0

    def format_errors(self) -> str:
        """Format all errors as a string for assertion messages."""
        errors = self.get_errors()
        if not errors:
            return "No errors"
        formatter = logging.Formatter("%(name)s - %(levelname)s - %(message)s")
        return "\n".join(formatter.format(r) for r in errors)


@pytest.fixture
def capture_logs():
    """Fixture that captures log output during a test.

    Usage:
        def test_something(capture_logs):
            some_function()
            assert not capture_logs.has_errors(), capture_logs.format_errors()
    """
    handler = LogCapture()
    handler.setLevel(logging.DEBUG)

    # Attach to root logger to capture all logs
    root_logger = logging.getLogger()
    old_level = root_logger.level
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(handler)

    yield handler

    root_logger.removeHandler(handler)
    root_logger.setLevel(old_level)


@pytest.fixture
def assert_no_log_errors(capture_logs):
    """Fail the test if anything was logged at ERROR level."""
    yield capture_logs

    errors = capture_logs.get_errors()
    if errors:
        pytest.fail(f"Unexpected log errors:\n{capture_logs.format_errors()}")

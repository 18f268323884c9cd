"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides common fixtures like temp-file stores and a fixed clock.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")

from datetime import datetime, timezone
from itertools import count

import pytest


NOW = datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_household.db")


@pytest.fixture
def member_db(tmp_db_path):
    from src.data.db import MemberDB
    return MemberDB(db_path=tmp_db_path)


@pytest.fixture
def task_db(tmp_db_path):
    from src.data.db import TaskDB
    return TaskDB(db_path=tmp_db_path)


@pytest.fixture
def item_db(tmp_db_path):
    from src.data.db import ItemDB
    return ItemDB(db_path=tmp_db_path)


@pytest.fixture
def follow_up_db(task_db):
    from src.data.db import FollowUpDB
    return FollowUpDB(task_db)


@pytest.fixture
def id_factory():
    """Deterministic ids: id-1, id-2, ..."""
    counter = count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def clock():
    """A settable clock; tests move it with clock.now = ..."""

    class _Clock:
        now = NOW

        def __call__(self):
            return self.now

    return _Clock()


@pytest.fixture
def service(member_db, task_db, item_db, follow_up_db, id_factory, clock):
    """HouseholdService over temp-file stores with injected clock and ids."""
    from src.adapters.plaintext_auth import PlaintextAuthenticator
    from src.core.household_service import HouseholdService
    from src.core.recurrence import RecurrenceScheduler

    return HouseholdService(
        member_store=member_db,
        task_store=task_db,
        item_store=item_db,
        scheduler=RecurrenceScheduler(ledger=follow_up_db, id_factory=id_factory),
        authenticator=PlaintextAuthenticator(member_db),
        clock=clock,
        id_factory=id_factory,
    )

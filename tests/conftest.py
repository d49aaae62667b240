"""Shared fixtures for split-ledger tests."""

import pytest

from split_ledger.config import Settings
from split_ledger.db import Database
from split_ledger.service import LedgerService


@pytest.fixture
def settings(tmp_path):
    """Create settings pointing at a temporary database."""
    return Settings(database_path=tmp_path / "ledger.db")


@pytest.fixture
def db(settings):
    """Create a temporary database."""
    database = Database(settings.database_path)
    yield database
    database.close()


@pytest.fixture
def service(settings, db):
    """Create a LedgerService instance."""
    return LedgerService(settings, db)


@pytest.fixture
def trio(service):
    """Alice, Bob and Carol in one group created by Alice."""
    alice = service.create_member("Alice", "alice@example.com")
    bob = service.create_member("Bob", "bob@example.com")
    carol = service.create_member("Carol", "carol@example.com")
    group = service.create_group(
        "Trip", created_by=alice.id, member_ids=[bob.id, carol.id]
    )
    return group, alice, bob, carol

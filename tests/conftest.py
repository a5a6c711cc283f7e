"""Shared fixtures for service tests.

Services import their query functions by name, so tests patch the attribute
on the service module itself. No database is needed: the session passed in
is a stand-in, and the UserGameData.stats blobs live in a plain dict.
"""

import copy
from collections import defaultdict

import pytest


class _Savepoint:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Stands in for an AsyncSession. Query functions are patched out, so
    only savepoints and commits are ever touched."""

    def __init__(self):
        self.commits = 0

    def begin_nested(self):
        return _Savepoint()

    async def commit(self):
        self.commits += 1

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class StatsStore:
    """In-memory UserGameData.stats and XP ledger, keyed by user id."""

    def __init__(self):
        self.stats: dict[int, dict] = defaultdict(dict)
        self.xp: list[tuple[int, int, str]] = []

    async def get_stats(self, db, user_id):
        return copy.deepcopy(self.stats[user_id])

    async def update_stats(self, db, user_id, mutate):
        return mutate(self.stats[user_id])

    async def add_xp(self, db, user_id, amount, source):
        self.xp.append((user_id, amount, source))

    def xp_total(self, user_id):
        return sum(amount for uid, amount, _ in self.xp if uid == user_id)

    def install(self, monkeypatch, module):
        """Patch whichever of get_stats/update_stats/add_xp ``module`` imported."""
        for name in ("get_stats", "update_stats", "add_xp"):
            if hasattr(module, name):
                monkeypatch.setattr(module, name, getattr(self, name))


def returning(value):
    """Build an async stand-in for a query function that returns ``value``."""

    async def query(*args, **kwargs):
        return value

    return query


@pytest.fixture
def db():
    return FakeSession()


@pytest.fixture
def store():
    return StatsStore()

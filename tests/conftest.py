"""
Shared fixtures.

Every storage-backed test runs twice: once on the SQL store and once on
the document store, both on files under pytest's tmp_path.
"""

import asyncio

import pytest

from ahorra.services.accounts import AccountService
from ahorra.services.ledger import LedgerService
from ahorra.services.security import PasswordHasher
from ahorra.services.session import SessionContext
from ahorra.services.storage import DocumentStorageBackend, SQLStorageBackend


def run(coro):
    """Drive a coroutine to completion."""
    return asyncio.run(coro)


@pytest.fixture(params=["sql", "document"])
def storage(request, tmp_path):
    if request.param == "sql":
        backend = SQLStorageBackend(url=f"sqlite:///{tmp_path / 'ahorra.db'}")
    else:
        backend = DocumentStorageBackend(path=tmp_path / "ahorra.json")
    yield backend
    run(backend.close())


@pytest.fixture
def hasher():
    # Minimum bcrypt cost keeps the suite fast
    return PasswordHasher(rounds=4)


@pytest.fixture
def session():
    return SessionContext()


@pytest.fixture
def accounts(storage, session, hasher):
    return AccountService(storage, session=session, hasher=hasher)


@pytest.fixture
def ledger(storage):
    return LedgerService(storage)


@pytest.fixture
def user(accounts):
    return run(accounts.register("Ana", "ana@x.com", "secret1", "secret1"))

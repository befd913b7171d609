"""Shared test fixtures."""

import sqlite3
from collections.abc import Iterator

import pytest

from entry_tree.core.database.schema import create_schema
from entry_tree.core.database.store import SqliteEntryStore
from entry_tree.core.tree.mutations import TreeMutationService
from entry_tree.models.permission import Permission
from tests.unit.fakes import Cast, FakeEntryStore, Project


@pytest.fixture
def fake_store() -> FakeEntryStore:
    return FakeEntryStore()


@pytest.fixture
def cast(fake_store: FakeEntryStore) -> Cast:
    """Three users registered in the fake store."""
    return Cast(
        alice=fake_store.add_user("alice"),
        bob=fake_store.add_user("bob"),
        carol=fake_store.add_user("carol"),
    )


@pytest.fixture
def service(fake_store: FakeEntryStore) -> TreeMutationService:
    return TreeMutationService(fake_store)


@pytest.fixture
def project(service: TreeMutationService, cast: Cast) -> Project:
    root = service.create("Root", "root body", cast.alice)
    service.set_permission(root.id, cast.bob, Permission.READER, cast.alice)
    chapter = service.create("Chapter", "chapter body", cast.alice, parent_id=root.id)
    section = service.create("Section", "section body", cast.alice, parent_id=chapter.id)
    private = service.create("Private", "secret", cast.alice, parent_id=root.id)
    # Created entries start with the author as EDITOR; clear them so they inherit.
    store = service.store
    assert isinstance(store, FakeEntryStore)
    store.rows[chapter.id].permissions = {}
    store.rows[section.id].permissions = {}
    store.calls.clear()
    return Project(root=root.id, chapter=chapter.id, section=section.id, private=private.id)


@pytest.fixture
def sqlite_conn() -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(":memory:")
    create_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def sqlite_store(sqlite_conn: sqlite3.Connection) -> SqliteEntryStore:
    return SqliteEntryStore(sqlite_conn)

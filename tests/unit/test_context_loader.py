"""Tests for Depth-1 context loading and navigation."""

import pytest

from entry_tree.core.tree.context import ContextLoader
from entry_tree.exceptions import NotFound, PermissionDenied
from entry_tree.models.permission import Permission
from tests.unit.fakes import Cast, FakeEntryStore, Project


def test_root_context_has_no_parent(
    fake_store: FakeEntryStore, cast: Cast, project: Project
) -> None:
    context = ContextLoader(fake_store).load_context(project.root, cast.bob)

    assert context is not None
    assert context.is_root
    assert context.parent is None
    assert context.target.node.title == "Root"
    assert context.target.node.content == "root body"
    assert context.target.access.level is Permission.READER
    assert [c.node.id for c in context.children] == [project.chapter, project.private]
    assert fake_store.fetched("fetch_minimal") == []


def test_children_are_annotated_per_viewer(
    fake_store: FakeEntryStore, cast: Cast, project: Project
) -> None:
    context = ContextLoader(fake_store).load_context(project.root, cast.bob)

    assert context is not None
    chapter = context.child(project.chapter)
    private = context.child(project.private)
    assert chapter is not None and private is not None
    assert chapter.access.level is Permission.READER
    assert not private.access.can_view
    assert chapter.node.hydration == "minimal"


def test_leaf_context_loads_only_one_level(
    fake_store: FakeEntryStore, cast: Cast, project: Project
) -> None:
    context = ContextLoader(fake_store).load_context(project.section, cast.bob)

    assert context is not None
    assert not context.has_children
    assert context.parent is not None
    assert context.parent.node.id == project.chapter
    assert context.parent.access.level is Permission.READER
    assert context.target.access.level is Permission.READER
    # the grandparent feeds resolution but is not linked into the payload
    assert context.parent.node.parent is None
    assert context.parent.node.children == []
    assert context.target.node.parent is context.parent.node
    assert fake_store.fetched("fetch_full") == [project.section]
    assert fake_store.fetched("fetch_children_minimal") == [project.section]
    assert fake_store.fetched("fetch_minimal") == [project.chapter, project.root]


def test_ancestor_walk_stops_at_first_boundary(
    fake_store: FakeEntryStore, cast: Cast, project: Project
) -> None:
    ContextLoader(fake_store).load_context(project.private, cast.alice)
    assert fake_store.fetched("fetch_minimal") == [project.root]

    fake_store.calls.clear()
    fake_store.rows[project.chapter].permissions = {cast.bob.id: Permission.COMMENTOR}
    context = ContextLoader(fake_store).load_context(project.section, cast.bob)
    assert context is not None
    assert context.target.access.level is Permission.COMMENTOR
    assert fake_store.fetched("fetch_minimal") == [project.chapter]


def test_unreachable_target_still_loads_without_access(
    fake_store: FakeEntryStore, cast: Cast, project: Project
) -> None:
    context = ContextLoader(fake_store).load_context(project.root, cast.carol)

    assert context is not None
    assert context.target.access.level is None
    assert not context.target.access.can_view
    assert all(not c.access.can_view for c in context.children)


def test_anonymous_viewer_gets_no_access(fake_store: FakeEntryStore, project: Project) -> None:
    context = ContextLoader(fake_store).load_context(project.root, None)
    assert context is not None
    assert not context.target.access.can_view


def test_missing_entry_returns_none(fake_store: FakeEntryStore, cast: Cast) -> None:
    assert ContextLoader(fake_store).load_context(404, cast.alice) is None


def test_dangling_parent_is_treated_as_root(
    fake_store: FakeEntryStore, cast: Cast, project: Project
) -> None:
    fake_store.rows[project.private].parent_id = 999
    context = ContextLoader(fake_store).load_context(project.private, cast.alice)

    assert context is not None
    assert context.is_root
    assert context.target.access.level is Permission.EDITOR


def test_navigate_to_child_and_back(
    fake_store: FakeEntryStore, cast: Cast, project: Project
) -> None:
    loader = ContextLoader(fake_store)
    root = loader.load_context(project.root, cast.bob)
    assert root is not None

    chapter = loader.navigate_to_child(root, project.chapter, cast.bob)
    assert chapter is not None
    assert chapter.target.node.id == project.chapter
    assert chapter.target.node.content == "chapter body"

    back = loader.navigate_to_parent(chapter, cast.bob)
    assert back is not None
    assert back.target.node.id == project.root
    assert loader.navigate_to_parent(back, cast.bob) is None


def test_navigate_to_hidden_child_is_denied(
    fake_store: FakeEntryStore, cast: Cast, project: Project
) -> None:
    loader = ContextLoader(fake_store)
    root = loader.load_context(project.root, cast.bob)
    assert root is not None

    with pytest.raises(PermissionDenied) as exc_info:
        loader.navigate_to_child(root, project.private, cast.bob)
    assert exc_info.value.entry_id == project.private


def test_navigate_to_non_child_raises_not_found(
    fake_store: FakeEntryStore, cast: Cast, project: Project
) -> None:
    loader = ContextLoader(fake_store)
    root = loader.load_context(project.root, cast.alice)
    assert root is not None

    with pytest.raises(NotFound):
        loader.navigate_to_child(root, project.section, cast.alice)

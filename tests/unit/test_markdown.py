"""Tests for markdown rendering of entry contexts."""

from entry_tree.core.tree.context import ContextLoader
from entry_tree.core.tree.markdown import render_context_as_markdown
from entry_tree.core.tree.mutations import TreeMutationService
from tests.unit.fakes import Cast, FakeEntryStore, Project


def test_renders_target_parent_and_children(
    fake_store: FakeEntryStore, cast: Cast, project: Project
) -> None:
    context = ContextLoader(fake_store).load_context(project.chapter, cast.bob)
    assert context is not None

    md = render_context_as_markdown(context)

    assert f"Parent: Root (id={project.root}, reader)" in md
    assert "# Chapter" in md
    assert "access=reader" in md
    assert "chapter body" in md
    assert "## 1 child" in md
    assert f"- Section (id={project.section}, reader)" in md


def test_hidden_target_shows_no_content(
    fake_store: FakeEntryStore, cast: Cast, project: Project
) -> None:
    context = ContextLoader(fake_store).load_context(project.private, cast.bob)
    assert context is not None

    md = render_context_as_markdown(context)

    assert "# Private" in md
    assert "access=no access" in md
    assert "secret" not in md
    assert "You do not have access" in md


def test_comments_are_rendered_and_optional(
    fake_store: FakeEntryStore,
    service: TreeMutationService,
    cast: Cast,
    project: Project,
) -> None:
    service.add_comment(project.root, "line one\nline two", cast.alice)
    context = ContextLoader(fake_store).load_context(project.root, cast.alice)
    assert context is not None

    md = render_context_as_markdown(context)
    assert "## Comments" in md
    assert "- **alice**" in md
    assert "  line two" in md
    assert "## 2 children" in md

    assert "## Comments" not in render_context_as_markdown(context, include_comments=False)

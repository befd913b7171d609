"""MCP server exposing entry tree navigation and editing tools."""

import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from entry_tree.config import resolve_db_path
from entry_tree.core.database.schema import migrate_schema
from entry_tree.core.database.store import SqliteEntryStore
from entry_tree.core.tree.context import ContextLoader
from entry_tree.core.tree.markdown import render_context_as_markdown
from entry_tree.core.tree.mutations import TreeMutationService
from entry_tree.exceptions import EntryTreeError, NotFound
from entry_tree.models.context import EntryContext, EntryView
from entry_tree.models.entry import User
from entry_tree.models.permission import Permission

# Accepted in place of a level to write an explicit denial.
_DENY_WORDS = frozenset({"none", "deny", "denied", "revoke"})


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=UTC).isoformat()


def _error(exc: EntryTreeError) -> dict[str, Any]:
    return {"success": False, "error": str(exc), "kind": type(exc).__name__}


def _actor(store: SqliteEntryStore, username: str) -> User:
    user = store.lookup_user_by_identifier(username)
    if user is None:
        raise NotFound(f"User not found: {username}")
    return user


def _view_dict(view: EntryView) -> dict[str, Any]:
    access = view.access
    return {
        "id": view.node.id,
        "title": view.node.title,
        "permission": access.level.name if access.level is not None else None,
        "can_view": access.can_view,
        "can_comment": access.can_comment,
        "can_edit": access.can_edit,
    }


def context_to_dict(context: EntryContext) -> dict[str, Any]:
    """Serialise a context; target content is withheld when it cannot be viewed."""
    target = context.target
    node = target.node
    entry = _view_dict(target)
    entry["modified"] = _iso(node.modified)
    entry["created"] = _iso(node.created)
    entry["author"] = node.author.username if node.author else None
    if target.access.can_view:
        entry["content"] = node.content
        entry["comments"] = [
            {
                "id": c.id,
                "author": c.author.username,
                "content": c.content,
                "created": _iso(c.created),
            }
            for c in node.sorted_comments()
        ]
    return {
        "entry": entry,
        "parent": _view_dict(context.parent) if context.parent else None,
        "children": [_view_dict(c) for c in context.children],
        "is_root": context.is_root,
        "child_count": context.child_count,
    }


# --- Core functions (testable without MCP context) ---


def entry_get_context(
    store: SqliteEntryStore,
    *,
    entry_id: int,
    viewer: str,
    output_format: str = "json",
) -> dict[str, Any]:
    """Load an entry with its parent and children, annotated with the viewer's access.

    Args:
        entry_id: Entry to load.
        viewer: Username (or id) of the viewing user.
        output_format: "json" (structured) or "markdown".
    """
    try:
        user = _actor(store, viewer)
        context = ContextLoader(store).load_context(entry_id, user)
    except EntryTreeError as e:
        return _error(e)
    if context is None:
        return {"success": False, "error": f"Entry {entry_id} not found.", "kind": "NotFound"}
    if output_format == "markdown":
        return {
            "success": True,
            "content": render_context_as_markdown(context),
            "entry_id": entry_id,
        }
    return {"success": True, **context_to_dict(context)}


def entry_list_roots(store: SqliteEntryStore, *, viewer: str) -> dict[str, Any]:
    """List root entries with the viewer's access to each."""
    try:
        user = _actor(store, viewer)
        loader = ContextLoader(store)
        roots = [
            _view_dict(EntryView(r, loader.resolver.access(r, user)))
            for r in store.fetch_roots_minimal()
        ]
    except EntryTreeError as e:
        return _error(e)
    return {"success": True, "roots": roots, "count": len(roots)}


def entry_create(
    store: SqliteEntryStore,
    *,
    title: str,
    author: str,
    content: str = "",
    parent_id: int | None = None,
) -> dict[str, Any]:
    """Create an entry owned by `author`, optionally under `parent_id`."""
    try:
        user = _actor(store, author)
        node = TreeMutationService(store).create(title, content, user, parent_id=parent_id)
    except EntryTreeError as e:
        return _error(e)
    return {"success": True, "entry_id": node.id, "parent_id": node.parent_id}


def entry_update_content(
    store: SqliteEntryStore,
    *,
    entry_id: int,
    actor: str,
    title: str,
    content: str,
) -> dict[str, Any]:
    """Replace an entry's title and content. Requires EDITOR."""
    try:
        user = _actor(store, actor)
        TreeMutationService(store).update_content(entry_id, title, content, user)
    except EntryTreeError as e:
        return _error(e)
    return {"success": True, "entry_id": entry_id}


def entry_add_comment(
    store: SqliteEntryStore,
    *,
    entry_id: int,
    actor: str,
    text: str,
) -> dict[str, Any]:
    """Comment on an entry. Requires COMMENTOR or EDITOR."""
    try:
        user = _actor(store, actor)
        comment = TreeMutationService(store).add_comment(entry_id, text, user)
    except EntryTreeError as e:
        return _error(e)
    return {"success": True, "entry_id": entry_id, "comment_id": comment.id}


def entry_set_permission(
    store: SqliteEntryStore,
    *,
    entry_id: int,
    actor: str,
    username: str,
    permission: str,
) -> dict[str, Any]:
    """Grant a level to a user on an entry, or deny them with "none".

    Args:
        entry_id: Entry to change.
        actor: Username of the acting EDITOR.
        username: User receiving the permission.
        permission: "reader", "commentor", "editor", or "none" to deny.
    """
    try:
        user = _actor(store, actor)
        service = TreeMutationService(store)
        if permission.strip().lower() in _DENY_WORDS:
            target = _actor(store, username)
            service.revoke_permission(entry_id, target, user)
            level_name = None
        else:
            level = Permission.parse(permission)
            service.set_permission_by_identifier(entry_id, username, level, user)
            level_name = level.name
    except EntryTreeError as e:
        return _error(e)
    return {"success": True, "entry_id": entry_id, "username": username, "permission": level_name}


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    conn: sqlite3.Connection
    store: SqliteEntryStore


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open database on startup, close on shutdown."""
    db_path = resolve_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    try:
        migrate_schema(conn)
        logger.info("Serving entries from {}", db_path)
        yield ServerContext(conn=conn, store=SqliteEntryStore(conn))
    finally:
        conn.close()


mcp_server = FastMCP(
    "entry-tree",
    instructions="""\
Entries form a tree. Each call returns one entry in full plus its parent and
direct children (id, title and your access to each) -- never deeper.

## Navigating

1. Start from entry_list_roots_tool.
2. Call entry_get_context_tool on a root, then on any child or parent id to
   move one step at a time.
3. Check can_view / can_comment / can_edit before writing; the server
   re-checks and returns an error with kind "PermissionDenied" otherwise.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def entry_list_roots_tool(ctx: Context, viewer: str) -> dict[str, Any]:
    """List root entries with the viewer's access to each.

    Args:
        viewer: Username of the viewing user.
    """
    return entry_list_roots(_ctx(ctx).store, viewer=viewer)


@mcp_server.tool()
async def entry_get_context_tool(
    ctx: Context,
    entry_id: int,
    viewer: str,
    output_format: str = "json",
) -> dict[str, Any]:
    """Load an entry with its parent and direct children.

    The entry's content and comments are included only when the viewer may
    view it. Parent and children carry id, title and access flags.

    Args:
        entry_id: Entry to load.
        viewer: Username of the viewing user.
        output_format: "json" (structured) or "markdown" (human-readable).
    """
    return entry_get_context(
        _ctx(ctx).store, entry_id=entry_id, viewer=viewer, output_format=output_format
    )


@mcp_server.tool()
async def entry_create_tool(
    ctx: Context,
    title: str,
    author: str,
    content: str = "",
    parent_id: int | None = None,
) -> dict[str, Any]:
    """Create an entry; the author becomes its EDITOR.

    Args:
        title: Entry title (required).
        author: Username of the creating user.
        content: Entry body.
        parent_id: Optional parent entry (author must be its EDITOR).
    """
    return entry_create(
        _ctx(ctx).store, title=title, author=author, content=content, parent_id=parent_id
    )


@mcp_server.tool()
async def entry_update_content_tool(
    ctx: Context,
    entry_id: int,
    actor: str,
    title: str,
    content: str,
) -> dict[str, Any]:
    """Replace an entry's title and content. Requires EDITOR.

    Args:
        entry_id: Entry to edit.
        actor: Username of the editing user.
        title: New title.
        content: New content.
    """
    return entry_update_content(
        _ctx(ctx).store, entry_id=entry_id, actor=actor, title=title, content=content
    )


@mcp_server.tool()
async def entry_add_comment_tool(
    ctx: Context,
    entry_id: int,
    actor: str,
    text: str,
) -> dict[str, Any]:
    """Add a comment to an entry. Requires COMMENTOR or EDITOR.

    Args:
        entry_id: Entry to comment on.
        actor: Username of the commenting user.
        text: Comment text.
    """
    return entry_add_comment(_ctx(ctx).store, entry_id=entry_id, actor=actor, text=text)


@mcp_server.tool()
async def entry_set_permission_tool(
    ctx: Context,
    entry_id: int,
    actor: str,
    username: str,
    permission: str,
) -> dict[str, Any]:
    """Grant or deny a user's access at an entry. Requires EDITOR.

    Args:
        entry_id: Entry to change.
        actor: Username of the acting editor.
        username: User receiving the permission.
        permission: "reader", "commentor", "editor", or "none" to deny.
    """
    return entry_set_permission(
        _ctx(ctx).store,
        entry_id=entry_id,
        actor=actor,
        username=username,
        permission=permission,
    )


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from entry_tree.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")

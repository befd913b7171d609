"""CLI for the entry tree (navigate, edit, share, MCP server)."""

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from entry_tree.config import SAMPLE_ROOT_TITLE, resolve_db_path
from entry_tree.core.database.schema import migrate_schema
from entry_tree.core.database.store import SqliteEntryStore
from entry_tree.core.seed.sample import ensure_sample_tree
from entry_tree.core.tree.context import ContextLoader
from entry_tree.core.tree.markdown import render_context_as_markdown
from entry_tree.core.tree.mutations import TreeMutationService
from entry_tree.exceptions import EntryTreeError, NotFound
from entry_tree.logging_config import configure_logging
from entry_tree.models.entry import User
from entry_tree.models.permission import Permission

app = typer.Typer(help="Entry tree: hierarchical documents with cascading permissions.")

DataDirOption = Annotated[
    Path | None,
    typer.Option("--data-dir", "-d", help="Directory holding the entry database"),
]
ActorOption = Annotated[
    str,
    typer.Option("--as", "-u", help="Username (or id) of the acting user"),
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


@contextmanager
def _open_store(data_dir: Path | None, *, create: bool = False) -> Iterator[SqliteEntryStore]:
    """Open the entry database and turn core failures into exit code 1."""
    db_path = resolve_db_path(data_dir)
    if not db_path.exists() and not create:
        logger.error("Entry database not found: {}. Run 'init' first.", db_path)
        raise typer.Exit(1)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    try:
        migrate_schema(conn)
        yield SqliteEntryStore(conn)
    except EntryTreeError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    finally:
        conn.close()


def _user(store: SqliteEntryStore, identifier: str) -> User:
    user = store.lookup_user_by_identifier(identifier)
    if user is None:
        raise NotFound(f"User not found: {identifier}")
    return user


@app.command()
def init(data_dir: DataDirOption = None) -> None:
    """Create the entry database if it does not exist."""
    with _open_store(data_dir, create=True):
        pass
    typer.echo(f"Database ready at {resolve_db_path(data_dir)}")


@app.command("user-add")
def user_add(
    username: str = typer.Argument(..., help="Username to register"),
    data_dir: DataDirOption = None,
) -> None:
    """Register a user so they can own entries and receive permissions."""
    with _open_store(data_dir) as store:
        user = store.create_user(username)
    typer.echo(f"Created user {user.username} (id={user.id})")


@app.command()
def users(data_dir: DataDirOption = None) -> None:
    """List registered users."""
    with _open_store(data_dir) as store:
        rows = store.list_users()
    typer.echo(f"{len(rows)} users:\n")
    for user in rows:
        typer.echo(f"  {user.username}  [id={user.id}]")


@app.command()
def roots(
    actor: ActorOption,
    data_dir: DataDirOption = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List root entries and your access to each."""
    from entry_tree.mcp.server import entry_list_roots

    with _open_store(data_dir) as store:
        result = entry_list_roots(store, viewer=actor)
    _emit(result, output_json)
    if not output_json:
        for root in result["roots"]:
            level = (root["permission"] or "no access").lower()
            typer.echo(f"  {root['title']}  [id={root['id']}, {level}]")


@app.command()
def create(
    actor: ActorOption,
    title: str = typer.Argument(..., help="Entry title"),
    content: str = typer.Option("", "--content", "-c", help="Entry body"),
    parent: Annotated[
        int | None,
        typer.Option("--parent", "-p", help="Create under this entry id"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Create an entry; you become its EDITOR."""
    with _open_store(data_dir) as store:
        author = _user(store, actor)
        node = TreeMutationService(store).create(title, content, author, parent_id=parent)
    typer.echo(f"Created entry {node.id}: {node.title}")


@app.command()
def show(
    actor: ActorOption,
    entry_id: int = typer.Argument(..., help="Entry id to show"),
    data_dir: DataDirOption = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    no_comments: bool = typer.Option(False, "--no-comments", help="Hide the comment thread"),
) -> None:
    """Show an entry with its parent and children."""
    from entry_tree.mcp.server import context_to_dict

    with _open_store(data_dir) as store:
        viewer = _user(store, actor)
        context = ContextLoader(store).load_context(entry_id, viewer)
    if context is None:
        typer.echo(f"Entry '{entry_id}' not found.")
        raise typer.Exit(1)
    if output_json:
        typer.echo(json.dumps(context_to_dict(context), indent=2))
    else:
        typer.echo(render_context_as_markdown(context, include_comments=not no_comments))


@app.command()
def edit(
    actor: ActorOption,
    entry_id: int = typer.Argument(..., help="Entry id to edit"),
    title: Annotated[str | None, typer.Option("--title", "-t", help="New title")] = None,
    content: Annotated[str | None, typer.Option("--content", "-c", help="New content")] = None,
    data_dir: DataDirOption = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Replace an entry's title and/or content (EDITOR only)."""
    from entry_tree.mcp.server import entry_update_content

    with _open_store(data_dir) as store:
        current = store.fetch_full(entry_id)
        if current is None:
            raise NotFound(f"Entry {entry_id} not found")
        result = entry_update_content(
            store,
            entry_id=entry_id,
            actor=actor,
            title=title if title is not None else current.title,
            content=content if content is not None else current.content,
        )
    _emit(result, output_json, ok=f"Updated entry {entry_id}")


@app.command()
def grant(
    actor: ActorOption,
    entry_id: int = typer.Argument(..., help="Entry id"),
    username: str = typer.Argument(..., help="User receiving the permission"),
    level: str = typer.Argument(..., help="reader, commentor or editor"),
    data_dir: DataDirOption = None,
) -> None:
    """Grant a permission level to a user at an entry (EDITOR only)."""
    with _open_store(data_dir) as store:
        editor = _user(store, actor)
        TreeMutationService(store).set_permission_by_identifier(
            entry_id, username, Permission.parse(level), editor
        )
    typer.echo(f"Granted {level.lower()} on entry {entry_id} to {username}")


@app.command()
def revoke(
    actor: ActorOption,
    entry_id: int = typer.Argument(..., help="Entry id"),
    username: str = typer.Argument(..., help="User to deny"),
    data_dir: DataDirOption = None,
) -> None:
    """Explicitly deny a user at an entry, overriding inherited access."""
    with _open_store(data_dir) as store:
        editor = _user(store, actor)
        TreeMutationService(store).revoke_permission(entry_id, _user(store, username), editor)
    typer.echo(f"Denied {username} on entry {entry_id}")


@app.command()
def comment(
    actor: ActorOption,
    entry_id: int = typer.Argument(..., help="Entry id"),
    text: str = typer.Argument(..., help="Comment text"),
    data_dir: DataDirOption = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Comment on an entry (COMMENTOR or EDITOR)."""
    from entry_tree.mcp.server import entry_add_comment

    with _open_store(data_dir) as store:
        result = entry_add_comment(store, entry_id=entry_id, actor=actor, text=text)
    _emit(result, output_json, ok=f"Added comment {result.get('comment_id')} to entry {entry_id}")


@app.command()
def uncomment(
    actor: ActorOption,
    entry_id: int = typer.Argument(..., help="Entry id"),
    comment_id: int = typer.Argument(..., help="Comment id"),
    data_dir: DataDirOption = None,
) -> None:
    """Remove a comment from an entry (EDITOR only)."""
    with _open_store(data_dir) as store:
        TreeMutationService(store).remove_comment(entry_id, comment_id, _user(store, actor))
    typer.echo(f"Removed comment {comment_id} from entry {entry_id}")


@app.command()
def move(
    actor: ActorOption,
    entry_id: int = typer.Argument(..., help="Entry id to move"),
    parent: Annotated[
        int | None,
        typer.Option("--parent", "-p", help="New parent id (omit to make it a root)"),
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Move an entry under a new parent, or make it a root."""
    with _open_store(data_dir) as store:
        TreeMutationService(store).reparent(entry_id, parent, _user(store, actor))
    where = f"under entry {parent}" if parent is not None else "to the top level"
    typer.echo(f"Moved entry {entry_id} {where}")


@app.command()
def detach(
    actor: ActorOption,
    parent_id: int = typer.Argument(..., help="Parent entry id"),
    child_id: int = typer.Argument(..., help="Child entry id"),
    data_dir: DataDirOption = None,
) -> None:
    """Detach a child from its parent; the child becomes a root."""
    with _open_store(data_dir) as store:
        TreeMutationService(store).detach_child(parent_id, child_id, _user(store, actor))
    typer.echo(f"Detached entry {child_id} from entry {parent_id}")


@app.command()
def delete(
    actor: ActorOption,
    entry_id: int = typer.Argument(..., help="Entry id to delete"),
    data_dir: DataDirOption = None,
) -> None:
    """Delete an entry (EDITOR only). Its children are kept as roots."""
    with _open_store(data_dir) as store:
        TreeMutationService(store).delete(entry_id, _user(store, actor))
    typer.echo(f"Deleted entry {entry_id}")


@app.command()
def seed(
    actor: ActorOption,
    title: str = typer.Option(SAMPLE_ROOT_TITLE, "--title", help="Root title of the sample"),
    data_dir: DataDirOption = None,
) -> None:
    """Create the sample project tree owned by the acting user (idempotent)."""
    with _open_store(data_dir) as store:
        owner = _user(store, actor)
        root_id = ensure_sample_tree(TreeMutationService(store), owner, title=title)
    typer.echo(f"Sample tree root: {root_id}")


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from entry_tree.mcp.server import run_mcp_server

    run_mcp_server()


def _emit(result: dict, output_json: bool, *, ok: str | None = None) -> None:
    """Print a core-function result; failures exit with code 1."""
    if output_json:
        typer.echo(json.dumps(result, indent=2))
    elif not result.get("success"):
        typer.echo(f"Error: {result.get('error')}", err=True)
    elif ok:
        typer.echo(ok)
    if not result.get("success"):
        raise typer.Exit(1)

"""Render a loaded entry context as markdown."""

import io
from datetime import UTC, datetime

from entry_tree.models.context import EntryAccess, EntryContext


def _access_label(access: EntryAccess) -> str:
    return access.level.name.lower() if access.level is not None else "no access"


def _fmt_ms(ms: int) -> str:
    return f"{datetime.fromtimestamp(ms / 1000, tz=UTC):%Y-%m-%d %H:%M}"


def render_context_as_markdown(context: EntryContext, *, include_comments: bool = True) -> str:
    """Render the target entry with its parent link and child list.

    The target's content and comments are only rendered when the viewer can
    view it. Parent and child titles are always listed, tagged with access.

    Args:
        context: Context returned by `ContextLoader.load_context`.
        include_comments: Whether to include the comment thread.

    Returns:
        Markdown string.
    """
    target = context.target
    node = target.node
    out = io.StringIO()

    if context.parent is not None:
        parent = context.parent
        out.write(
            f"Parent: {parent.node.title} "
            f"(id={parent.node.id}, {_access_label(parent.access)})\n\n"
        )

    out.write(f"# {node.title}\n\n")
    author = node.author.username if node.author else "unknown"
    out.write(
        f"id={node.id}  author={author}  modified={_fmt_ms(node.modified)}  "
        f"access={_access_label(target.access)}\n\n"
    )

    if not target.access.can_view:
        out.write("_You do not have access to this entry._\n")
        return out.getvalue()

    if node.content:
        out.write(f"{node.content}\n\n")

    if include_comments and node.comments:
        out.write("## Comments\n\n")
        for comment in node.sorted_comments():
            lines = comment.content.split("\n")
            out.write(f"- **{comment.author.username}** ({_fmt_ms(comment.created)}): {lines[0]}\n")
            for line in lines[1:]:
                out.write(f"  {line}\n")
        out.write("\n")

    if context.has_children:
        noun = "child" if context.child_count == 1 else "children"
        out.write(f"## {context.child_count} {noun}\n\n")
        for child in context.children:
            out.write(
                f"- {child.node.title} (id={child.node.id}, {_access_label(child.access)})\n"
            )

    return out.getvalue()

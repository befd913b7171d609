"""Navigation payloads built by the context loader."""

from dataclasses import dataclass

from entry_tree.models.entry import EntryNode
from entry_tree.models.permission import Capability, Permission


@dataclass(frozen=True)
class EntryAccess:
    """A viewer's resolved permission on one entry."""

    entry_id: int
    level: Permission | None

    @property
    def can_view(self) -> bool:
        return Capability.VIEW.granted_by(self.level)

    @property
    def can_comment(self) -> bool:
        return Capability.COMMENT.granted_by(self.level)

    @property
    def can_edit(self) -> bool:
        return Capability.EDIT.granted_by(self.level)

    def allows(self, capability: Capability) -> bool:
        return capability.granted_by(self.level)


@dataclass(frozen=True)
class EntryView:
    """An entry paired with the viewer's access to it."""

    node: EntryNode
    access: EntryAccess


@dataclass(frozen=True)
class EntryContext:
    """Depth-1 lookahead around a target entry.

    The target is fully hydrated; the parent and children carry only id,
    title and permissions.
    """

    target: EntryView
    parent: EntryView | None
    children: tuple[EntryView, ...]

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def has_children(self) -> bool:
        return bool(self.children)

    @property
    def child_count(self) -> int:
        return len(self.children)

    def child(self, entry_id: int) -> EntryView | None:
        return next((c for c in self.children if c.node.id == entry_id), None)

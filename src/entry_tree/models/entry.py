"""Domain models for the entry tree."""

import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Literal

from entry_tree.exceptions import CycleDetected
from entry_tree.models.permission import Permission, PermissionTable

Hydration = Literal["full", "minimal"]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class User:
    """A user reference; authentication lives outside this package."""

    id: int
    username: str


@dataclass
class Comment:
    """A comment attached to an entry."""

    content: str
    author: User
    created: int = field(default_factory=now_ms)
    id: int = 0


class EntryNode:
    """A node in the entry tree.

    Relationship changes go through `attach_child`, `set_parent` and
    `detach_child`, which keep both sides of the parent/child link in sync and
    refuse any change that would introduce a cycle. Nodes loaded from storage
    are linked with `bind_parent`, which does not touch timestamps.
    """

    def __init__(
        self,
        title: str,
        content: str = "",
        author: User | None = None,
        *,
        id: int = 0,
        parent_id: int | None = None,
        created: int | None = None,
        modified: int | None = None,
        permissions: PermissionTable | None = None,
        comments: list[Comment] | None = None,
        hydration: Hydration = "full",
    ) -> None:
        self.id = id
        self.title = title
        self.content = content
        self.author = author
        self.parent_id = parent_id
        self.parent: EntryNode | None = None
        self.children: list[EntryNode] = []
        self.comments: list[Comment] = list(comments or [])
        self.hydration: Hydration = hydration
        self.created = created if created is not None else now_ms()
        self.modified = modified if modified is not None else self.created
        if permissions is None:
            permissions = PermissionTable()
            # The creator is never locked out of a fresh entry.
            if author is not None and id == 0:
                permissions.set(author.id, Permission.EDITOR)
        self.permissions = permissions

    def __repr__(self) -> str:
        return f"EntryNode(id={self.id}, title={self.title!r}, hydration={self.hydration!r})"

    # --- identity ---

    def is_same(self, other: "EntryNode | None") -> bool:
        """Same object, or the same persisted row loaded twice."""
        if other is None:
            return False
        return self is other or (self.id != 0 and self.id == other.id)

    @property
    def is_root(self) -> bool:
        return self.parent is None and self.parent_id is None

    def touch(self) -> None:
        self.modified = max(now_ms(), self.modified)

    # --- content ---

    def update(self, title: str, content: str) -> None:
        self.title = title
        self.content = content
        self.touch()

    def add_comment(self, comment: Comment) -> None:
        self.comments.append(comment)
        self.touch()

    def remove_comment(self, comment: Comment) -> None:
        self.comments.remove(comment)
        self.touch()

    def find_comment(self, comment_id: int) -> Comment | None:
        return next((c for c in self.comments if c.id == comment_id), None)

    def sorted_comments(self) -> list[Comment]:
        return sorted(self.comments, key=lambda c: (c.created, c.id))

    # --- relationships ---

    def is_ancestor_of(self, other: "EntryNode") -> bool:
        """Walk `other`'s parent pointers looking for this node."""
        current = other.parent
        while current is not None:
            if current.is_same(self):
                return True
            current = current.parent
        return False

    def attach_child(self, child: "EntryNode") -> None:
        """Make `child` a child of this node.

        Raises:
            CycleDetected: if `child` is this node or one of its ancestors.
        """
        if child.is_same(self) or child.is_ancestor_of(self):
            msg = f"Cannot attach entry {child.id} under entry {self.id}: circular dependency"
            raise CycleDetected(msg)
        child._move_under(self)

    def set_parent(self, new_parent: "EntryNode | None") -> None:
        """Reparent this node; `None` makes it a root.

        Raises:
            CycleDetected: if `new_parent` is this node or one of its descendants.
        """
        if new_parent is not None and (new_parent.is_same(self) or self.is_ancestor_of(new_parent)):
            msg = f"Cannot move entry {self.id} under entry {new_parent.id}: circular dependency"
            raise CycleDetected(msg)
        if new_parent is None:
            if self.parent is not None:
                self.parent.detach_child(self)
            elif self.parent_id is not None:
                self.parent_id = None
                self.touch()
            return
        self._move_under(new_parent)

    def detach_child(self, child: "EntryNode") -> None:
        """Remove `child`; a no-op when it is not currently a child."""
        index = self._child_index(child)
        if index is None:
            return
        del self.children[index]
        if child.parent is not None and child.parent.is_same(self):
            child.parent = None
            child.parent_id = None
            child.touch()
        self.touch()

    def bind_parent(self, parent: "EntryNode") -> None:
        """Link a stored node to its stored parent without touching timestamps."""
        self.parent = parent
        self.parent_id = parent.id or None
        if parent._child_index(self) is None:
            parent.children.append(self)

    def _move_under(self, parent: "EntryNode") -> None:
        old = self.parent
        if old is not None and not old.is_same(parent):
            index = old._child_index(self)
            if index is not None:
                del old.children[index]
                old.touch()
        self.parent = parent
        self.parent_id = parent.id or None
        if parent._child_index(self) is None:
            parent.children.append(self)
        self.touch()
        parent.touch()

    def _child_index(self, child: "EntryNode") -> int | None:
        for i, existing in enumerate(self.children):
            if existing.is_same(child):
                return i
        return None

    # --- navigation ---

    def root(self) -> "EntryNode":
        current = self
        while current.parent is not None:
            current = current.parent
        return current

    def ancestors(self) -> Iterator["EntryNode"]:
        current = self.parent
        while current is not None:
            yield current
            current = current.parent

    def descendants(self) -> list["EntryNode"]:
        """Pre-order flatten of the loaded subtree (bulk operations only)."""
        out: list[EntryNode] = []
        for child in self.children:
            out.append(child)
            out.extend(child.descendants())
        return out

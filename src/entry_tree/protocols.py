"""Protocols for dependency injection into the entry tree services."""

from typing import Protocol, runtime_checkable

from entry_tree.models.entry import EntryNode, User


@runtime_checkable
class EntryStoreProtocol(Protocol):
    """Storage collaborator consumed by the context loader and mutation service."""

    def fetch_full(self, entry_id: int) -> EntryNode | None:
        """Load an entry with content, comments and permissions."""
        ...

    def fetch_minimal(self, entry_id: int) -> EntryNode | None:
        """Load id, title, parent id and permissions only."""
        ...

    def fetch_children_minimal(self, parent_id: int) -> list[EntryNode]:
        """Load the direct children of an entry, minimally hydrated."""
        ...

    def fetch_roots_minimal(self) -> list[EntryNode]:
        """Load every entry without a parent, minimally hydrated."""
        ...

    def save(self, *nodes: EntryNode) -> None:
        """Upsert the given entries as one logical unit, assigning ids to new ones."""
        ...

    def delete(self, entry_id: int) -> int:
        """Remove an entry; its children lose their parent link.

        Returns how many children were orphaned.
        """
        ...

    def lookup_user_by_identifier(self, identifier: str) -> User | None:
        """Find a user by username or numeric id."""
        ...

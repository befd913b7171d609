"""Cascading permission resolution over the entry tree."""

from collections.abc import Iterable

from entry_tree.exceptions import PermissionDenied
from entry_tree.models.context import EntryAccess
from entry_tree.models.entry import EntryNode, User
from entry_tree.models.permission import DENIED, Capability, Permission, PermissionTable


class CascadeResolver:
    """Resolve a user's effective permission by walking toward the root.

    The walk stops at the first permission boundary, i.e. the first table
    holding any entry. At a boundary the user gets their own row, or nothing:
    an explicit denial and a missing row both deny, and neither is forwarded
    to the parent.
    """

    def resolve_chain(
        self, tables: Iterable[PermissionTable], user: User | None
    ) -> Permission | None:
        """Resolve over permission tables ordered from the node up to the root."""
        if user is None:
            return None
        for table in tables:
            explicit = table.get_explicit(user.id)
            if explicit is DENIED:
                return None
            if explicit is not None:
                return explicit
            if table.has_any_entries():
                return None
        return None

    def resolve(self, node: EntryNode, user: User | None) -> Permission | None:
        chain = [node.permissions, *(a.permissions for a in node.ancestors())]
        return self.resolve_chain(chain, user)

    def access(self, node: EntryNode, user: User | None) -> EntryAccess:
        return EntryAccess(entry_id=node.id, level=self.resolve(node, user))

    def require(self, node: EntryNode, user: User | None, capability: Capability) -> Permission:
        """Return the resolved level, or raise if it does not grant `capability`."""
        level = self.resolve(node, user)
        if level is None or not capability.granted_by(level):
            raise PermissionDenied(str(capability), node.id, user.username if user else None)
        return level

"""Hierarchical entries with cascading per-user permissions."""

from entry_tree.core.access.cascade import CascadeResolver
from entry_tree.core.database.store import SqliteEntryStore
from entry_tree.core.tree.context import ContextLoader
from entry_tree.core.tree.mutations import TreeMutationService
from entry_tree.models.context import EntryAccess, EntryContext, EntryView
from entry_tree.models.entry import Comment, EntryNode, User
from entry_tree.models.permission import DENIED, Capability, Permission, PermissionTable
from entry_tree.protocols import EntryStoreProtocol

__all__ = [
    "DENIED",
    "CascadeResolver",
    "Capability",
    "Comment",
    "ContextLoader",
    "EntryAccess",
    "EntryContext",
    "EntryNode",
    "EntryStoreProtocol",
    "EntryView",
    "Permission",
    "PermissionTable",
    "SqliteEntryStore",
    "TreeMutationService",
    "User",
]

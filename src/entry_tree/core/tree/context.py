"""Depth-1 lookahead context loading."""

from loguru import logger

from entry_tree.core.access.cascade import CascadeResolver
from entry_tree.exceptions import CycleDetected, NotFound, PermissionDenied
from entry_tree.models.context import EntryAccess, EntryContext, EntryView
from entry_tree.models.entry import EntryNode, User
from entry_tree.models.permission import Capability, PermissionTable
from entry_tree.protocols import EntryStoreProtocol


class ContextLoader:
    """Builds `EntryContext` payloads one navigation step at a time.

    A single call loads the target fully, its parent and its direct children
    minimally, and never exposes anything further away. Grandparents and
    grandchildren need another `load_context` keyed on the new target.
    """

    def __init__(
        self, store: EntryStoreProtocol, resolver: CascadeResolver | None = None
    ) -> None:
        self.store = store
        self.resolver = resolver or CascadeResolver()

    def load_context(self, entry_id: int, viewer: User | None) -> EntryContext | None:
        """Load the Depth-1 context of `entry_id`, annotated for `viewer`.

        Returns None when the entry does not exist. An entry the viewer cannot
        see still loads; its access annotation says so.
        """
        target = self.store.fetch_full(entry_id)
        if target is None:
            logger.debug("Entry {} not found", entry_id)
            return None

        parent: EntryNode | None = None
        if target.parent_id is not None:
            parent = self.store.fetch_minimal(target.parent_id)
            if parent is None:
                logger.warning(
                    "Entry {} points at missing parent {}, treating it as a root",
                    target.id,
                    target.parent_id,
                )
                target.parent_id = None

        children = self.store.fetch_children_minimal(target.id)

        inherited = self._inherited_tables(parent)
        target_chain = [target.permissions, *inherited]

        if parent is not None:
            # link upward only; the minimal parent carries no children
            target.parent = parent
        for child in children:
            child.bind_parent(target)

        context = EntryContext(
            target=EntryView(target, self._access(target, target_chain, viewer)),
            parent=(
                EntryView(parent, self._access(parent, inherited, viewer))
                if parent is not None
                else None
            ),
            children=tuple(
                EntryView(child, self._access(child, [child.permissions, *target_chain], viewer))
                for child in children
            ),
        )
        logger.debug(
            "Loaded context for entry {} ({} children, root={})",
            target.id,
            context.child_count,
            context.is_root,
        )
        return context

    def _inherited_tables(self, parent: EntryNode | None) -> list[PermissionTable]:
        """Permission tables from `parent` up to the first boundary.

        Ancestors above the parent are fetched only while every table seen so
        far is empty; they feed resolution and are never returned.
        """
        if parent is None:
            return []
        tables = [parent.permissions]
        seen = {parent.id}
        current = parent
        while not current.permissions.has_any_entries() and current.parent_id is not None:
            if current.parent_id in seen:
                msg = f"Stored tree contains a cycle through entry {current.parent_id}"
                raise CycleDetected(msg)
            ancestor = self.store.fetch_minimal(current.parent_id)
            if ancestor is None:
                break
            tables.append(ancestor.permissions)
            seen.add(ancestor.id)
            current = ancestor
        return tables

    def _access(
        self, node: EntryNode, chain: list[PermissionTable], viewer: User | None
    ) -> EntryAccess:
        return EntryAccess(entry_id=node.id, level=self.resolver.resolve_chain(chain, viewer))

    def navigate_to_parent(self, context: EntryContext, viewer: User | None) -> EntryContext | None:
        """Reload the context one level up; None at a root.

        Raises:
            PermissionDenied: if the viewer cannot view the parent.
        """
        if context.parent is None:
            return None
        self._require_view(context.parent, viewer)
        return self.load_context(context.parent.node.id, viewer)

    def navigate_to_child(
        self, context: EntryContext, child_id: int, viewer: User | None
    ) -> EntryContext | None:
        """Reload the context keyed on one of the current children.

        Raises:
            NotFound: if `child_id` is not a child of the current target.
            PermissionDenied: if the viewer cannot view that child.
        """
        view = context.child(child_id)
        if view is None:
            msg = f"Entry {child_id} is not a child of entry {context.target.node.id}"
            raise NotFound(msg)
        self._require_view(view, viewer)
        return self.load_context(child_id, viewer)

    @staticmethod
    def _require_view(view: EntryView, viewer: User | None) -> None:
        if not view.access.can_view:
            raise PermissionDenied(
                str(Capability.VIEW), view.node.id, viewer.username if viewer else None
            )

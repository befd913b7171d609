"""Structural, content, comment and permission changes to the entry tree."""

import threading

from loguru import logger

from entry_tree.core.access.cascade import CascadeResolver
from entry_tree.exceptions import CycleDetected, NotFound, PermissionDenied, ValidationFailed
from entry_tree.models.entry import Comment, EntryNode, User
from entry_tree.models.permission import Capability, Permission
from entry_tree.protocols import EntryStoreProtocol


def _require_text(field: str, value: str | None) -> str:
    if value is None or not value.strip():
        raise ValidationFailed(field, "must not be empty")
    return value


def _require_user(field: str, user: User | None) -> User:
    if user is None:
        raise ValidationFailed(field, "a user is required")
    return user


class TreeMutationService:
    """Apply checked mutations and persist every affected entry together.

    Each operation reloads what it touches from the store, verifies the
    actor's cascaded capability, mutates through `EntryNode`'s checked
    operations and saves in one `store.save` call. Mutations are serialised
    through a per-service lock; reads elsewhere are unaffected.
    """

    def __init__(
        self, store: EntryStoreProtocol, resolver: CascadeResolver | None = None
    ) -> None:
        self.store = store
        self.resolver = resolver or CascadeResolver()
        self._lock = threading.RLock()

    # --- loading ---

    def load_lineage(self, entry_id: int) -> EntryNode:
        """Fetch an entry fully and link its ancestors (minimally) up to the root.

        Raises:
            NotFound: if the entry does not exist.
        """
        node = self.store.fetch_full(entry_id)
        if node is None:
            raise NotFound(f"Entry {entry_id} not found")
        seen = {node.id}
        current = node
        while current.parent_id is not None:
            if current.parent_id in seen:
                msg = f"Stored tree contains a cycle through entry {current.parent_id}"
                raise CycleDetected(msg)
            parent = self.store.fetch_minimal(current.parent_id)
            if parent is None:
                logger.warning(
                    "Entry {} points at missing parent {}", current.id, current.parent_id
                )
                break
            current.bind_parent(parent)
            seen.add(parent.id)
            current = parent
        return node

    def _require(self, node: EntryNode, actor: User, capability: Capability) -> None:
        try:
            self.resolver.require(node, actor, capability)
        except PermissionDenied:
            logger.warning(
                "Rejected {} on entry {} by {}", capability, node.id, actor.username
            )
            raise

    # --- creation and deletion ---

    def create(
        self,
        title: str,
        content: str,
        author: User,
        *,
        parent_id: int | None = None,
    ) -> EntryNode:
        """Create and persist an entry with its author as EDITOR.

        With `parent_id`, the author must be an EDITOR of the parent and the
        new entry is attached under it in the same save.
        """
        _require_text("title", title)
        _require_user("author", author)
        node = EntryNode(title, content or "", author)
        with self._lock:
            if parent_id is None:
                self.store.save(node)
            else:
                parent = self.load_lineage(parent_id)
                self._require(parent, author, Capability.EDIT)
                parent.attach_child(node)
                self.store.save(parent, node)
        logger.info("Created entry {} {!r} by {}", node.id, node.title, author.username)
        return node

    def delete(self, entry_id: int, actor: User) -> None:
        """Delete an entry; its children are kept and become roots."""
        _require_user("actor", actor)
        with self._lock:
            node = self.load_lineage(entry_id)
            self._require(node, actor, Capability.EDIT)
            orphaned = self.store.delete(entry_id)
        logger.info(
            "Deleted entry {} by {} ({} children now roots)", entry_id, actor.username, orphaned
        )

    def persist_structure(self, root: EntryNode) -> list[EntryNode]:
        """Save a freshly built, unsaved tree in pre-order (parents first)."""
        nodes = [root, *root.descendants()]
        if root.parent is not None or root.parent_id is not None:
            raise ValidationFailed("root", "a new structure must start at a root entry")
        if any(n.id for n in nodes):
            raise ValidationFailed("root", "structure contains already persisted entries")
        for node in nodes:
            _require_text("title", node.title)
        with self._lock:
            self.store.save(*nodes)
        logger.info("Persisted structure of {} entries under {!r}", len(nodes), root.title)
        return nodes

    # --- structure ---

    def attach_child(self, parent_id: int, child_id: int, actor: User) -> EntryNode:
        """Move `child_id` under `parent_id`.

        Requires EDITOR on the child, the new parent and the old parent.
        """
        _require_user("actor", actor)
        with self._lock:
            parent = self.load_lineage(parent_id)
            child = self.load_lineage(child_id)
            old_parent = child.parent
            self._require_move(child, old_parent, parent, actor)
            parent.attach_child(child)
            self._save_move(child, parent, old_parent)
        logger.info("Attached entry {} under {} by {}", child_id, parent_id, actor.username)
        return child

    def reparent(self, entry_id: int, new_parent_id: int | None, actor: User) -> EntryNode:
        """Move an entry under `new_parent_id`, or make it a root when None."""
        _require_user("actor", actor)
        with self._lock:
            node = self.load_lineage(entry_id)
            new_parent = self.load_lineage(new_parent_id) if new_parent_id is not None else None
            old_parent = node.parent
            self._require_move(node, old_parent, new_parent, actor)
            node.set_parent(new_parent)
            self._save_move(node, new_parent, old_parent)
        logger.info("Moved entry {} under {} by {}", entry_id, new_parent_id, actor.username)
        return node

    def detach_child(self, parent_id: int, child_id: int, actor: User) -> EntryNode:
        """Detach `child_id` from `parent_id`, leaving it as a root.

        A no-op when the child is not currently under that parent.
        """
        _require_user("actor", actor)
        with self._lock:
            child = self.load_lineage(child_id)
            parent = child.parent
            if parent is None or parent.id != parent_id:
                logger.debug("Entry {} is not under {}, nothing to detach", child_id, parent_id)
                return child
            self._require_move(child, parent, None, actor)
            parent.detach_child(child)
            self.store.save(child, parent)
        logger.info("Detached entry {} from {} by {}", child_id, parent_id, actor.username)
        return child

    def _require_move(
        self,
        node: EntryNode,
        old_parent: EntryNode | None,
        new_parent: EntryNode | None,
        actor: User,
    ) -> None:
        self._require(node, actor, Capability.EDIT)
        if old_parent is not None:
            self._require(old_parent, actor, Capability.EDIT)
        if new_parent is not None and not new_parent.is_same(old_parent):
            self._require(new_parent, actor, Capability.EDIT)

    def _save_move(
        self, node: EntryNode, new_parent: EntryNode | None, old_parent: EntryNode | None
    ) -> None:
        affected = [node]
        if new_parent is not None:
            affected.insert(0, new_parent)
        if old_parent is not None and not old_parent.is_same(new_parent):
            affected.append(old_parent)
        self.store.save(*affected)

    # --- content ---

    def update_content(self, entry_id: int, title: str, content: str, actor: User) -> EntryNode:
        """Replace title and content. EDITOR only, whatever the UI allowed."""
        _require_text("title", title)
        _require_user("actor", actor)
        with self._lock:
            node = self.load_lineage(entry_id)
            self._require(node, actor, Capability.EDIT)
            node.update(title, content or "")
            self.store.save(node)
        logger.info("Updated entry {} by {}", entry_id, actor.username)
        return node

    def add_comment(self, entry_id: int, text: str, actor: User) -> Comment:
        """Append a comment. COMMENTOR or EDITOR."""
        _require_text("comment", text)
        _require_user("actor", actor)
        with self._lock:
            node = self.load_lineage(entry_id)
            self._require(node, actor, Capability.COMMENT)
            comment = Comment(content=text, author=actor)
            node.add_comment(comment)
            self.store.save(node)
        logger.info("Comment {} added to entry {} by {}", comment.id, entry_id, actor.username)
        return comment

    def remove_comment(self, entry_id: int, comment_id: int, actor: User) -> None:
        """Remove a comment. EDITOR only."""
        _require_user("actor", actor)
        with self._lock:
            node = self.load_lineage(entry_id)
            self._require(node, actor, Capability.EDIT)
            comment = node.find_comment(comment_id)
            if comment is None:
                raise NotFound(f"Comment {comment_id} not found on entry {entry_id}")
            node.remove_comment(comment)
            self.store.save(node)
        logger.info("Comment {} removed from entry {} by {}", comment_id, entry_id, actor.username)

    # --- permissions ---

    def set_permission(
        self, entry_id: int, user: User, level: Permission, actor: User
    ) -> EntryNode:
        """Grant `level` to `user` at this entry. The actor must be an EDITOR."""
        _require_user("user", user)
        _require_user("actor", actor)
        if not isinstance(level, Permission):
            raise ValidationFailed("permission", f"expected a Permission, got {level!r}")
        with self._lock:
            node = self.load_lineage(entry_id)
            self._require(node, actor, Capability.EDIT)
            node.permissions.set(user.id, level)
            node.touch()
            self.store.save(node)
        logger.info(
            "Set {} for {} on entry {} by {}", level.name, user.username, entry_id, actor.username
        )
        return node

    def set_permission_by_identifier(
        self, entry_id: int, identifier: str, level: Permission, actor: User
    ) -> EntryNode:
        """Like `set_permission`, looking the user up by username or id."""
        _require_text("identifier", identifier)
        user = self.store.lookup_user_by_identifier(identifier.strip())
        if user is None:
            raise NotFound(f"User not found: {identifier.strip()}")
        return self.set_permission(entry_id, user, level, actor)

    def revoke_permission(self, entry_id: int, user: User, actor: User) -> EntryNode:
        """Explicitly deny `user` at this entry, overriding any ancestor grant."""
        _require_user("user", user)
        _require_user("actor", actor)
        with self._lock:
            node = self.load_lineage(entry_id)
            self._require(node, actor, Capability.EDIT)
            node.permissions.remove(user.id)
            node.touch()
            self.store.save(node)
        logger.info("Denied {} on entry {} by {}", user.username, entry_id, actor.username)
        return node

"""SQLite implementation of the entry storage collaborator."""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger

from entry_tree.exceptions import EntryTreeError, NotFound, StorageUnavailable, ValidationFailed
from entry_tree.models.entry import Comment, EntryNode, User, now_ms
from entry_tree.models.permission import DENIED, Permission, PermissionEntry, PermissionTable


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as e:
        logger.exception("Storage failure while {}", action)
        msg = f"Storage failure while {action}: {e}"
        raise StorageUnavailable(msg) from e


def _decode_permission(value: str | None) -> PermissionEntry:
    return DENIED if value is None else Permission[value]


def _encode_permission(level: PermissionEntry) -> str | None:
    return level.name if isinstance(level, Permission) else None


class SqliteEntryStore:
    """Entry, permission, comment and user rows in one SQLite database.

    The connection must already carry the schema (see `migrate_schema`).
    Children are never stored on the parent: a node's children are the rows
    whose `parent_id` points at it.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    # --- users ---

    def create_user(self, username: str) -> User:
        username = username.strip()
        if not username:
            raise ValidationFailed("username", "must not be empty")
        with _storage_errors(f"creating user {username!r}"):
            try:
                cur = self.conn.execute(
                    "INSERT INTO users (username, created) VALUES (?, ?)",
                    (username, now_ms()),
                )
            except sqlite3.IntegrityError:
                self.conn.rollback()
                raise ValidationFailed("username", f"{username!r} is already taken") from None
            self.conn.commit()
        user_id = cur.lastrowid
        assert user_id is not None
        logger.info("Created user {} (id={})", username, user_id)
        return User(id=user_id, username=username)

    def get_user(self, user_id: int) -> User | None:
        with _storage_errors(f"loading user {user_id}"):
            row = self.conn.execute(
                "SELECT id, username FROM users WHERE id = ?", (user_id,)
            ).fetchone()
        return User(id=row[0], username=row[1]) if row else None

    def list_users(self) -> list[User]:
        with _storage_errors("listing users"):
            rows = self.conn.execute("SELECT id, username FROM users ORDER BY username").fetchall()
        return [User(id=r[0], username=r[1]) for r in rows]

    def lookup_user_by_identifier(self, identifier: str) -> User | None:
        identifier = identifier.strip()
        if not identifier:
            return None
        with _storage_errors(f"looking up user {identifier!r}"):
            row = self.conn.execute(
                "SELECT id, username FROM users WHERE username = ?", (identifier,)
            ).fetchone()
        if row is None and identifier.isdigit():
            return self.get_user(int(identifier))
        return User(id=row[0], username=row[1]) if row else None

    # --- reads ---

    def fetch_full(self, entry_id: int) -> EntryNode | None:
        with _storage_errors(f"loading entry {entry_id}"):
            row = self.conn.execute(
                "SELECT e.id, e.title, e.content, e.parent_id, e.created, e.modified, "
                "u.id, u.username "
                "FROM entries e LEFT JOIN users u ON u.id = e.author_id WHERE e.id = ?",
                (entry_id,),
            ).fetchone()
            if row is None:
                return None
            permissions = self._load_permissions([entry_id])[entry_id]
            comments = self._load_comments(entry_id)

        author = User(id=row[6], username=row[7]) if row[6] is not None else None
        return EntryNode(
            row[1],
            row[2],
            author,
            id=row[0],
            parent_id=row[3],
            created=row[4],
            modified=row[5],
            permissions=permissions,
            comments=comments,
        )

    def fetch_minimal(self, entry_id: int) -> EntryNode | None:
        with _storage_errors(f"loading entry {entry_id}"):
            row = self.conn.execute(
                "SELECT id, title, parent_id FROM entries WHERE id = ?", (entry_id,)
            ).fetchone()
            if row is None:
                return None
            permissions = self._load_permissions([entry_id])[entry_id]
        return self._minimal(row, permissions)

    def fetch_children_minimal(self, parent_id: int) -> list[EntryNode]:
        return self._fetch_minimal_where("parent_id = ?", (parent_id,), f"children of {parent_id}")

    def fetch_roots_minimal(self) -> list[EntryNode]:
        return self._fetch_minimal_where("parent_id IS NULL", (), "root entries")

    def _fetch_minimal_where(
        self, where: str, params: tuple[int, ...], what: str
    ) -> list[EntryNode]:
        with _storage_errors(f"loading {what}"):
            rows = self.conn.execute(
                f"SELECT id, title, parent_id FROM entries WHERE {where} ORDER BY id",
                params,
            ).fetchall()
            permissions = self._load_permissions([r[0] for r in rows])
        return [self._minimal(r, permissions[r[0]]) for r in rows]

    @staticmethod
    def _minimal(row: tuple[int, str, int | None], permissions: PermissionTable) -> EntryNode:
        return EntryNode(
            row[1],
            id=row[0],
            parent_id=row[2],
            permissions=permissions,
            hydration="minimal",
        )

    def _load_permissions(self, entry_ids: list[int]) -> dict[int, PermissionTable]:
        tables = {entry_id: PermissionTable() for entry_id in entry_ids}
        if not entry_ids:
            return tables
        placeholders = ",".join("?" * len(entry_ids))
        rows = self.conn.execute(
            f"SELECT entry_id, user_id, permission FROM entry_permissions "
            f"WHERE entry_id IN ({placeholders})",
            entry_ids,
        ).fetchall()
        for entry_id, user_id, permission in rows:
            tables[entry_id].set(user_id, _decode_permission(permission))
        return tables

    def _load_comments(self, entry_id: int) -> list[Comment]:
        rows = self.conn.execute(
            "SELECT c.id, c.content, c.created, u.id, u.username "
            "FROM entry_comments c JOIN users u ON u.id = c.author_id "
            "WHERE c.entry_id = ? ORDER BY c.created, c.id",
            (entry_id,),
        ).fetchall()
        return [
            Comment(content=r[1], author=User(id=r[3], username=r[4]), created=r[2], id=r[0])
            for r in rows
        ]

    # --- writes ---

    def save(self, *nodes: EntryNode) -> None:
        """Upsert `nodes` in one transaction.

        Minimal nodes only update title, parent link and permissions, since
        their content and comments were never loaded. On failure the nodes get
        back the ids and parent ids they had before the call.
        """
        before = [
            (node, node.id, node.parent_id, [c for c in node.comments if not c.id])
            for node in nodes
        ]
        try:
            with _storage_errors("saving entries"):
                for node in nodes:
                    self._save_one(node)
                self.conn.commit()
        except EntryTreeError:
            self.conn.rollback()
            for node, entry_id, parent_id, new_comments in before:
                node.id = entry_id
                node.parent_id = parent_id
                for comment in new_comments:
                    comment.id = 0
            raise
        logger.debug("Saved entries {}", [n.id for n in nodes])

    def _save_one(self, node: EntryNode) -> None:
        if node.parent is not None:
            if node.parent.id == 0:
                raise ValidationFailed("parent", f"parent of {node.title!r} must be saved first")
            parent_id: int | None = node.parent.id
        else:
            parent_id = node.parent_id

        if node.id == 0:
            if node.hydration != "full":
                raise ValidationFailed("entry", "cannot insert a minimally loaded entry")
            cur = self.conn.execute(
                "INSERT INTO entries (title, content, parent_id, author_id, created, modified) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    node.title,
                    node.content,
                    parent_id,
                    node.author.id if node.author else None,
                    node.created,
                    node.modified,
                ),
            )
            assert cur.lastrowid is not None
            node.id = cur.lastrowid
        elif node.hydration == "full":
            cur = self.conn.execute(
                "UPDATE entries SET title = ?, content = ?, parent_id = ?, modified = ? "
                "WHERE id = ?",
                (node.title, node.content, parent_id, node.modified, node.id),
            )
        else:
            cur = self.conn.execute(
                "UPDATE entries SET title = ?, parent_id = ? WHERE id = ?",
                (node.title, parent_id, node.id),
            )
        if cur.rowcount == 0:
            raise NotFound(f"Entry {node.id} not found")
        node.parent_id = parent_id

        self.conn.execute("DELETE FROM entry_permissions WHERE entry_id = ?", (node.id,))
        self.conn.executemany(
            "INSERT INTO entry_permissions (entry_id, user_id, permission) VALUES (?, ?, ?)",
            [(node.id, uid, _encode_permission(lvl)) for uid, lvl in node.permissions.entries()],
        )

        if node.hydration == "full":
            self._save_comments(node)

    def _save_comments(self, node: EntryNode) -> None:
        kept = [c.id for c in node.comments if c.id]
        if kept:
            placeholders = ",".join("?" * len(kept))
            self.conn.execute(
                f"DELETE FROM entry_comments WHERE entry_id = ? AND id NOT IN ({placeholders})",
                [node.id, *kept],
            )
        else:
            self.conn.execute("DELETE FROM entry_comments WHERE entry_id = ?", (node.id,))
        for comment in node.comments:
            if comment.id:
                continue
            cur = self.conn.execute(
                "INSERT INTO entry_comments (entry_id, author_id, content, created) "
                "VALUES (?, ?, ?, ?)",
                (node.id, comment.author.id, comment.content, comment.created),
            )
            assert cur.lastrowid is not None
            comment.id = cur.lastrowid

    def delete(self, entry_id: int) -> int:
        """Delete an entry; its children are kept as new roots.

        Returns the number of children that lost their parent.
        """
        try:
            with _storage_errors(f"deleting entry {entry_id}"):
                cur = self.conn.execute("DELETE FROM entries WHERE id = ?", (entry_id,))
                if cur.rowcount == 0:
                    raise NotFound(f"Entry {entry_id} not found")
                orphaned = self.conn.execute(
                    "UPDATE entries SET parent_id = NULL WHERE parent_id = ?", (entry_id,)
                ).rowcount
                self.conn.execute("DELETE FROM entry_permissions WHERE entry_id = ?", (entry_id,))
                self.conn.execute("DELETE FROM entry_comments WHERE entry_id = ?", (entry_id,))
                self.conn.commit()
        except EntryTreeError:
            self.conn.rollback()
            raise
        logger.debug("Deleted entry row {} ({} children orphaned)", entry_id, orphaned)
        return orphaned

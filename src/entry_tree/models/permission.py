"""Permission levels and the per-entry permission table."""

import enum
from collections.abc import Iterator

from entry_tree.exceptions import ValidationFailed


class Permission(enum.IntEnum):
    """Ordered permission levels: READER < COMMENTOR < EDITOR."""

    READER = 1
    COMMENTOR = 2
    EDITOR = 3

    @property
    def can_view(self) -> bool:
        return True

    @property
    def can_comment(self) -> bool:
        return self >= Permission.COMMENTOR

    @property
    def can_edit(self) -> bool:
        return self is Permission.EDITOR

    @classmethod
    def parse(cls, value: str) -> "Permission":
        """Parse a level name case-insensitively ("editor", "READER", ...)."""
        try:
            return cls[value.strip().upper()]
        except KeyError:
            names = ", ".join(p.name for p in cls)
            raise ValidationFailed("permission", f"{value!r} is not one of {names}") from None


class Capability(enum.StrEnum):
    """What a caller wants to do with an entry."""

    VIEW = "view"
    COMMENT = "comment"
    EDIT = "edit"

    def granted_by(self, level: Permission | None) -> bool:
        if level is None:
            return False
        if self is Capability.VIEW:
            return level.can_view
        if self is Capability.COMMENT:
            return level.can_comment
        return level.can_edit


class Denial(enum.Enum):
    """Marker stored in place of a level when a user is explicitly denied."""

    DENIED = "DENIED"

    def __repr__(self) -> str:
        return "DENIED"


DENIED = Denial.DENIED

PermissionEntry = Permission | Denial


class PermissionTable:
    """Sparse user id -> permission mapping owned by one entry.

    A table with any entry at all (denials included) is a permission boundary.
    An empty table defers entirely to the parent entry.
    """

    def __init__(self, entries: dict[int, PermissionEntry] | None = None) -> None:
        self._entries: dict[int, PermissionEntry] = {}
        for user_id, level in (entries or {}).items():
            self.set(user_id, level)

    def set(self, user_id: int, level: PermissionEntry) -> None:
        """Insert or replace the entry for `user_id` (last write wins)."""
        if not isinstance(level, Permission | Denial):
            raise ValidationFailed("permission", f"expected a Permission, got {level!r}")
        self._entries[user_id] = level

    def get_explicit(self, user_id: int) -> PermissionEntry | None:
        return self._entries.get(user_id)

    def has_any_entries(self) -> bool:
        return bool(self._entries)

    def remove(self, user_id: int) -> None:
        """Replace the user's entry with an explicit denial.

        The row is kept so that an ancestor's broader grant does not leak
        back into this subtree.
        """
        self._entries[user_id] = DENIED

    def entries(self) -> list[tuple[int, PermissionEntry]]:
        return sorted(self._entries.items())

    def copy(self) -> "PermissionTable":
        return PermissionTable(dict(self._entries))

    def __iter__(self) -> Iterator[int]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PermissionTable):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        body = ", ".join(
            f"{uid}: {lvl.name if isinstance(lvl, Permission) else 'DENIED'}"
            for uid, lvl in self.entries()
        )
        return f"PermissionTable({{{body}}})"

"""Typed failures raised by the entry tree core."""


class EntryTreeError(Exception):
    """Base class for every recoverable entry tree failure."""


class NotFound(EntryTreeError):
    """An entry or user id does not resolve to an existing record."""


class CycleDetected(EntryTreeError):
    """A relationship change would make a node its own ancestor."""


class PermissionDenied(EntryTreeError):
    """The caller's cascaded capability is insufficient for the operation."""

    def __init__(self, capability: str, entry_id: int, username: str | None = None) -> None:
        self.capability = capability
        self.entry_id = entry_id
        who = f"User {username!r}" if username else "Anonymous caller"
        super().__init__(f"{who} lacks {capability} permission on entry {entry_id}")


class ValidationFailed(EntryTreeError):
    """An argument is empty or of the wrong kind."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class StorageUnavailable(EntryTreeError):
    """The storage collaborator failed; the core never retries."""

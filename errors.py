class LibraryError(Exception):
    """Base class for rejected library actions; the message is shown to the user."""


class ConflictError(LibraryError):
    """An active request already exists, or the action would orphan one."""


class NotFoundError(LibraryError):
    """The record the action needs does not exist."""


class UnavailableError(LibraryError):
    """No copy is left to issue."""


class InventoryError(LibraryError):
    """A copy-count change would leave the range [0, total_copies]."""

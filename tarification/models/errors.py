class TarificationError(Exception):
    """Base class for every error raised by the tarification core."""


class ValidationError(TarificationError):
    """
    The caller asked for something that cannot be satisfied as given
    (missing vehicle, package mode without a package id, duplicate code,
    overlapping RC row...).
    """


class NotFoundError(TarificationError):
    """An explicitly requested record does not exist."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} '{record_id}' not found")


class StorageError(TarificationError):
    """The catalog store failed to read or write. Never retried here."""

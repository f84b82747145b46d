"""
Error kinds raised by the catalog service.

Each kind carries the HTTP status the API layer answers with, so callers
dispatch on the exception type and never on its message.
"""


class CatalogError(Exception):
    """Base class for catalog errors."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CatalogError):
    """A caller-supplied argument violates a domain rule."""
    status_code = 400


class NotFoundError(CatalogError):
    """The referenced product does not exist."""
    status_code = 404


class ConflictError(CatalogError):
    """The operation would give two active products the same name."""
    status_code = 409


class StorageError(CatalogError):
    """The database failed or could not be reached."""
    status_code = 500

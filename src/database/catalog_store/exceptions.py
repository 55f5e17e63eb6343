"""Exceptions for catalog (apps and users) lookups."""


class CatalogStoreError(Exception):
    """Base exception for catalog store errors."""

    pass


class UserNotFoundError(CatalogStoreError):
    """Raised when a caller id has no profile."""

    pass

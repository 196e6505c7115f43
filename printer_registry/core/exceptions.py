"""Errors raised by the printer registry.

Lookup misses are not errors: they return ``None``.
"""


class PrinterRegistryError(Exception):
    """Base class for all registry errors."""


class StorageIOError(PrinterRegistryError):
    """Raised when the storage engine fails to read or commit."""

    working_committed = False

    def __init__(self, operation: str, cause: BaseException | None = None):
        self.operation = operation
        self.cause = cause
        message = f"{operation} failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class PropagationError(StorageIOError):
    """Raised when a working view committed but the authoritative view did not.

    Storage already holds the working view's changes. The authoritative view
    has been rolled back and reloads from storage on next access; the caller
    must retry or reconcile.
    """

    working_committed = True


class InvariantViolation(PrinterRegistryError):
    """Raised when the single-default-printer rule is found broken."""


class ViewOwnershipError(PrinterRegistryError):
    """Raised when a view is used outside the loop or task that owns it."""

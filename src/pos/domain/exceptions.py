"""Domain-level exceptions.

All business rule violations are expressed as subclasses of DomainException
so the CLI layer can catch them uniformly and display user-friendly messages.
"""


class DomainException(Exception):
    """Base class for all domain errors."""


class ValidationError(DomainException):
    """A business rule or invariant was violated."""


class EntityNotFoundError(DomainException):
    """A requested entity does not exist."""


class ConcurrencyConflictError(DomainException):
    """The stored document changed between read and write."""


class StorageError(DomainException):
    """The document store could not be read or written."""


class InventorySyncError(DomainException):
    """A stock ledger adjustment failed.

    Callers log these; a ledger mutation that already succeeded is never
    rolled back because of one.
    """


class ConfigurationError(DomainException):
    """A setting could not be parsed."""

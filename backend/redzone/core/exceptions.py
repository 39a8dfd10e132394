"""
Error taxonomy for the ingestion pipeline.

Errors are handled at the smallest scope that keeps sources isolated:
item errors drop one record, source errors fail one source's outcome,
configuration errors stop the whole run.
"""

from typing import Optional


class RedzoneError(Exception):
    """Base class for all application errors."""


class ConfigurationError(RedzoneError):
    """Required configuration (environment, credentials) is missing."""


class SourceNotFoundError(RedzoneError):
    """No live ingestion module is registered under the given source id."""

    def __init__(self, source_id: str):
        super().__init__(f"No module found for source: {source_id}")
        self.source_id = source_id


class SourceError(RedzoneError):
    """Fetching, transforming or validating one source failed."""

    def __init__(self, message: str, source_id: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.source_id = source_id
        self.cause = cause


class ItemValidationError(RedzoneError):
    """
    One raw item could not become a canonical record.

    Transform steps return this as a value instead of raising it, so a bad
    item never interrupts the rest of the batch.
    """

    def __init__(self, reason: str, reference: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.reference = reference

    def __str__(self) -> str:
        if self.reference:
            return f"{self.reason} ({self.reference})"
        return self.reason


class PersistenceError(RedzoneError):
    """A read or write against the content store failed."""

"""Exception hierarchy."""

from __future__ import annotations


class StickyBrainError(Exception):
    """Base class for all StickyBrain errors."""


class ExtractionError(StickyBrainError):
    """A document could not be read or converted to plain text."""


class ProviderError(StickyBrainError):
    """An external embedding, generation, search or scrape call failed."""


class IndexSchemaMismatch(StickyBrainError):
    """Embedding dimensionality does not match the collection."""

    def __init__(self, expected: int | None, actual: int | None, detail: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        message = detail or f"embedding dimension {actual} does not match collection dimension {expected}"
        super().__init__(message)


class WorkerCrash(StickyBrainError):
    """The pipeline worker exited without delivering a result."""

    def __init__(self, exitcode: int | None) -> None:
        self.exitcode = exitcode
        super().__init__(f"pipeline worker exited unexpectedly (exit code {exitcode})")

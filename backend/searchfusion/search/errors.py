"""Exception taxonomy for the search pipeline.

Request validation failures are raised by FastAPI/pydantic and handled at the
application level; everything raised below the HTTP layer derives from
:class:`SearchError`.
"""

from __future__ import annotations

from searchfusion.constants import RetrievalSource


class SearchError(Exception):
    """Base class for search pipeline failures."""


class LanguageServiceError(SearchError):
    """A text-generation or embedding call failed or returned unusable output.

    Always recovered locally: enrichment and query enhancement fall back to
    defaults, and a failed embedding only disables the vector path.
    """


class RetrievalError(SearchError):
    """One retrieval path (lexical or vector) failed."""

    def __init__(self, source: RetrievalSource | str, message: str) -> None:
        self.source = RetrievalSource(source)
        self.message = message
        super().__init__(f"{self.source} retrieval failed: {message}")


class TotalRetrievalFailure(SearchError):
    """Neither retrieval path produced a result list."""

    def __init__(self, errors: dict[RetrievalSource, BaseException] | None = None) -> None:
        self.errors = errors or {}
        detail = "; ".join(f"{source}: {exc}" for source, exc in self.errors.items())
        super().__init__(f"All retrieval paths failed ({detail})" if detail else "All retrieval paths failed")


class SearchTimeoutError(SearchError):
    """An external call exceeded its time budget."""

    def __init__(self, operation: str, timeout: float) -> None:
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} timed out after {timeout:g}s")

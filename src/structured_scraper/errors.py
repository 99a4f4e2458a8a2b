"""
Errors module for structured_scraper.

Defines the exception hierarchy shared by the extraction pipeline. A selector
that matches nothing is never an error; it is represented as an absent value
or an empty list.
"""

from typing import Any, List, Optional


class ExtractionError(Exception):
    """Base class for all structured_scraper errors."""
    pass


class ConfigurationError(ExtractionError):
    """
    Raised when a schema, pattern set or config file is malformed.

    Always raised at construction/validation time, before any document
    is processed.
    """

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


class GenerationError(ExtractionError):
    """Raised when schema or pattern generation fails, times out or returns garbage."""

    def __init__(self, message: str, raw_response: Any = None):
        super().__init__(message)
        self.raw_response = raw_response


class CacheIOError(ExtractionError):
    """Raised when the schema cache cannot be read from or written to."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class FetchError(ExtractionError):
    """Raised when a page cannot be fetched by the crawler."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class AllStrategiesFailedError(ExtractionError):
    """Raised on request when every strategy in a fallback chain failed."""

    def __init__(self, attempts: List[Any]):
        self.attempts = list(attempts)
        names = ", ".join(attempt.strategy_name for attempt in self.attempts) or "none"
        super().__init__(f"No extraction strategy succeeded (tried: {names})")

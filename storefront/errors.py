"""Errors raised by the storefront venue pipeline.

Only the events listing fetch surfaces errors to callers. Enrichment
failures are absorbed into fallback results and never appear here.
"""


class StorefrontError(Exception):
    """Base class for storefront errors."""


class FetchError(StorefrontError):
    """An events page could not be retrieved. The same page may be retried."""

    def __init__(self, message: str, *, page: int | None = None):
        super().__init__(message)
        self.page = page


class NetworkError(FetchError):
    """Transport failure or non-success HTTP status."""

    def __init__(
        self, message: str, *, page: int | None = None, status_code: int | None = None
    ):
        super().__init__(message, page=page)
        self.status_code = status_code


class PayloadError(FetchError):
    """The backend answered, but not with an events listing."""

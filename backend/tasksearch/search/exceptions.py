"""Search exceptions.

Custom exceptions for search failures, providing structured error handling
across the request validation, tenant scoping and upstream retrieval stages.
"""


class SearchError(Exception):
    """Base exception for search errors."""

    def __init__(self, message: str, code: str = "SEARCH_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class SearchValidationError(SearchError):
    """The search request is malformed.

    Raised before any retrieval, e.g. for a query shorter than the minimum
    length.
    """

    def __init__(self, message: str):
        super().__init__(message=message, code="SEARCH_INVALID_REQUEST")


class TenantAuthorizationError(SearchError):
    """The request's tenant context is missing or inconsistent.

    Raised when no authenticated tenant is present (401), or when a tenant
    named in the body or the ``X-Tenant-ID`` header differs from the
    authenticated one (403).
    """

    def __init__(self, message: str, status_code: int = 403):
        self.status_code = status_code
        super().__init__(message=message, code="SEARCH_TENANT_FORBIDDEN")


class UpstreamUnavailableError(SearchError):
    """A retrieval collaborator failed or timed out.

    Handled inside the orchestrator, which degrades to another retrieval
    path instead of surfacing the failure to the caller.
    """

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(
            message=f"[{source}] {message}",
            code="SEARCH_UPSTREAM_UNAVAILABLE",
        )

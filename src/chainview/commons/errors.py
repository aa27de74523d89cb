"""
Error types raised by the collection query layer and the HTTP surface.

Every error carries a stable ``code``, an HTTP ``status`` and an optional list
of per-field violations, so the webservice can render one envelope for all of
them:

    {"code": "...", "message": "...", "errors": [{"field", "location", "messages"}]}
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class ChainviewError(Exception):
    """Base exception for all Chainview errors.

    Attributes:
        message: Human-readable message
        code: Stable error code for programmatic handling
        status: HTTP status the error maps to
        errors: Per-field violations (field, location, messages)
    """

    code = "chainview_error"
    status = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        """Render the public error envelope."""
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class InvalidQuery(ChainviewError):
    """Malformed filter, sort, paging or projection syntax.

    The offending query parameter is reported as a field violation.
    """

    code = "invalid_query"
    status = 400

    def __init__(self, param: str, message: str) -> None:
        super().__init__(
            f"Invalid '{param}' parameter: {message}",
            errors=[{"field": param, "location": "query", "messages": [message]}],
        )
        self.param = param


class NotFound(ChainviewError):
    """Single-entity lookup matched no rows."""

    code = "not_found"
    status = 404


class Unauthorized(ChainviewError):
    """Missing, invalid or expired credentials."""

    code = "unauthorized"
    status = 401


class Conflict(ChainviewError):
    """Unique constraint violation on create."""

    code = "conflict"
    status = 409


class QueryExecutionError(ChainviewError):
    """Storage rejected or failed an execution plan.

    The public message is generic; ``cause`` keeps the underlying exception
    for logging.
    """

    code = "query_execution_error"
    status = 500

    def __init__(self, cause: Exception, message: str = "Query could not be executed.") -> None:
        super().__init__(message)
        self.cause = cause


class Timeout(ChainviewError):
    """A storage or upstream call exceeded its deadline. Safe to retry."""

    code = "timeout"
    status = 504

    def __init__(self, target: str, seconds: float) -> None:
        super().__init__(f"Deadline of {seconds:g}s exceeded while waiting for {target}.")
        self.target = target
        self.seconds = seconds

    def to_dict(self) -> Dict[str, Any]:
        """Render the envelope with the retry hint."""
        body = super().to_dict()
        body["retryable"] = True
        return body


class UpstreamUnavailable(ChainviewError):
    """The blockchain node could not be reached."""

    code = "upstream_unavailable"
    status = 502

"""Application-specific exceptions for consistent error handling."""

from typing import Any

from pydantic import BaseModel, ValidationError


class ErrorResponse(BaseModel):
    """Error envelope handed to whatever transport sits in front of this package.

    Format: {error_code, message, details}
    """

    error_code: str
    message: str
    details: Any | None = None
    retryable: bool = False


class SearchError(Exception):
    """Base error with a stable code."""

    code = "SEARCH_ERROR"
    retryable = False

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | list[Any] | None = None,
        code: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        if code is not None:
            self.code = code

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error_code=self.code,
            message=self.message,
            details=self.details,
            retryable=self.retryable,
        )

    def to_dict(self) -> dict[str, Any]:
        return self.to_response().model_dump()


class InputError(SearchError):
    """Malformed filter/sort/pagination request. Raised before any backend call."""

    code = "INVALID_FILTER_SPEC"

    @classmethod
    def from_validation_error(cls, exc: ValidationError) -> "InputError":
        """Convert a pydantic ValidationError into an InputError listing each violation."""
        details: list[dict[str, Any]] = []
        for error in exc.errors():
            details.append(
                {
                    "field": ".".join(str(loc) for loc in error.get("loc", [])),
                    "issue": error.get("msg", "Validation error"),
                    "type": error.get("type", "validation_error"),
                }
            )
        first = details[0] if details else {"field": "", "issue": "Invalid request"}
        message = f"{first['field']}: {first['issue']}" if first["field"] else first["issue"]
        return cls(message, details=details)


class BackendUnavailable(SearchError):
    """Relational store or search index unreachable or timed out."""

    code = "BACKEND_UNAVAILABLE"
    retryable = True


class SearchQueryRejected(SearchError):
    """The search index rejected a request (4xx other than not-found)."""

    code = "SEARCH_QUERY_REJECTED"


class DocumentBuildError(SearchError):
    """A relational row cannot be projected into an index document."""

    code = "DOCUMENT_BUILD_FAILED"

"""Custom application exceptions."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_content(self) -> dict[str, Any]:
        """Response body for this exception."""
        return {"detail": self.detail}


class ValidationError(AppException):
    """Validation error exception."""

    def __init__(self, detail: str = "Validation failed", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        self.resource = resource
        self.identifier = identifier
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class InvalidTransitionError(AppException):
    """Requested status change is not an edge of the transition table."""

    def __init__(self, from_status: str, to_status: str) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Invalid status transition from {from_status} to {to_status}",
        )

    def to_content(self) -> dict[str, Any]:
        return {
            "detail": self.detail,
            "from_status": self.from_status,
            "to_status": self.to_status,
        }


class ExternalServiceError(AppException):
    """External service error."""

    def __init__(self, service: str, detail: str | None = None) -> None:
        message = f"External service '{service}' is unavailable"
        if detail:
            message = f"{message}: {detail}"
        self.service = service
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message)

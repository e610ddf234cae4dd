from fastapi import status


class DomainError(Exception):
    """Base class for domain-specific errors.

    Subclasses carry the HTTP status the global exception handler maps them
    to, so request handlers can simply raise.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_type: str = "domain_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequest(DomainError):
    """Exception raised when the caller supplied unusable input."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "invalid_request"


class TemplateNotFound(DomainError):
    """Exception raised when a requested instruction template does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"

    def __init__(self, message: str = "Skill not found") -> None:
        super().__init__(message)


class ProjectNotFound(DomainError):
    """Exception raised when a project cannot be resolved for the caller."""

    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"

    def __init__(self, message: str = "Project not found") -> None:
        super().__init__(message)

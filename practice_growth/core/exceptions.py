"""Typed service errors shared by every growth component.

Each service module subclasses these to name its own failures
(``ReferralNotFoundError(NotFoundError)`` and so on). Routers never
translate them by hand: ``main.py`` installs a single handler that maps
``code``/``status_code`` onto the response.
"""


class GrowthError(Exception):
    """Base exception for growth-engine errors."""

    code = "ERROR"
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.code

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "detail": self.message}


class NotFoundError(GrowthError):
    """Entity not found."""

    code = "NOT_FOUND"
    status_code = 404


class ConflictError(GrowthError):
    """Operation conflicts with existing state."""

    code = "CONFLICT"
    status_code = 409


class BadRequestError(GrowthError):
    """Operation not allowed in the current state."""

    code = "BAD_REQUEST"
    status_code = 400


class ValidationError(GrowthError):
    """Input failed validation."""

    code = "VALIDATION_ERROR"
    status_code = 422

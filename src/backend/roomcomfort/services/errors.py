"""Domain errors shared by all services.

The API layer maps each class to one HTTP status code, so services raise
these instead of HTTPException.
"""


class ComfortError(Exception):
    """Base class for domain errors."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class InvalidInputError(ComfortError):
    """Missing or malformed input, rejected before touching storage."""

    status_code = 400


class AuthenticationError(ComfortError):
    """Bad credentials or an invalid token."""

    status_code = 401


class PermissionDeniedError(ComfortError):
    status_code = 403


class NotFoundError(ComfortError):
    """Referenced chip, ownership, threshold, reading or user is absent."""

    status_code = 404


class ConflictError(ComfortError):
    """Duplicate unique key or stale username version."""

    status_code = 409


class PreconditionFailedError(ComfortError):
    """Supplied version tag does not match the stored one."""

    status_code = 412


class PreconditionRequiredError(ComfortError):
    """A version tag is required but was not supplied."""

    status_code = 428

"""Application error taxonomy.

Learn: Every failure a caller can cause is an AppError with a status code
and an is_operational flag. Operational errors are rendered verbatim;
anything else is logged server-side and rendered as a generic 500
(see medconnect.api.errors).

Services raise these directly. Routes never build HTTPExceptions by hand.
"""

from typing import Optional


class AppError(Exception):
    """Structured failure carrying {message, status_code, is_operational}."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        is_operational: bool = True,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.is_operational = is_operational
        self.headers = headers


class BadRequest(AppError):
    status_code = 400


class ValidationFailed(BadRequest):
    def __init__(self, message: str = "Validation failed", errors: Optional[dict] = None):
        super().__init__(message)
        self.errors = errors or {}


class Unauthorized(AppError):
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(AppError):
    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFound(AppError):
    status_code = 404


class Conflict(AppError):
    status_code = 409


class TooManyRequests(AppError):
    status_code = 429

    def __init__(
        self,
        message: str = "Too many requests, please try again later",
        retry_after: Optional[int] = None,
    ):
        super().__init__(message)
        self.retry_after = retry_after
        if retry_after is not None:
            self.headers = {"Retry-After": str(retry_after)}


class InternalError(AppError):
    def __init__(self, message: str = "Something went wrong!"):
        super().__init__(message, status_code=500, is_operational=False)


# ─── Authentication failures ────────────────────────────


class InvalidCredentials(Unauthorized):
    """Unknown email OR wrong password — deliberately indistinguishable."""

    def __init__(self):
        super().__init__("Invalid credentials")


class AccountDeactivated(Unauthorized):
    def __init__(self):
        super().__init__("Account is deactivated")


class InvalidToken(Unauthorized):
    def __init__(self, message: str = "Invalid refresh token"):
        super().__init__(message)


class TokenNotFound(Unauthorized):
    def __init__(self):
        super().__init__("Refresh token not found")


class TokenExpired(Unauthorized):
    def __init__(self, message: str = "Refresh token expired"):
        super().__init__(message)


class UserUnavailable(Unauthorized):
    def __init__(self):
        super().__init__("User not found or deactivated")


class IncorrectPassword(BadRequest):
    """Current password mismatch on change-password (400, not 401)."""

    def __init__(self):
        super().__init__("Current password is incorrect")

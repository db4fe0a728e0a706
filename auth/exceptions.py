"""Typed exceptions for auth failures."""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class ValidationError(AuthError):
    """
    Input failed a validation rule. Client-correctable.

    ``rule`` names the violated rule (e.g. "password_strength") so callers
    can map it to a form field without parsing the message.
    """

    def __init__(self, rule: str, message: str):
        self.rule = rule
        super().__init__(message)


class ConflictError(AuthError):
    """Email is already registered (case-insensitive)."""


class InvalidCredentialsError(AuthError):
    """
    Email or password is wrong.

    The message is identical for unknown emails and wrong passwords so
    callers cannot enumerate accounts.
    """

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class RateLimitedError(AuthError):
    """Too many attempts. Client should wait before retrying."""

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limited. Retry after {retry_after_seconds} seconds.")


class InvalidTokenError(AuthError):
    """
    Token is invalid, expired, or already used.

    Used for password reset tokens and refresh tokens.
    """


class UnauthorizedError(AuthError):
    """The active session does not own the resource being changed."""


class UserNotFoundError(AuthError):
    """
    No user record for the given id or email.

    Note: In user-facing responses, don't reveal whether an email exists.
    This exception is for internal logic only.
    """

"""Custom error definitions for API exceptions."""
from typing import Dict, Optional
from fastapi import HTTPException
from starlette import status


class Unauthorized(HTTPException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class InvalidCredentialsError(HTTPException):
    def __init__(self, detail: str = "Invalid email or password"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class MissingCredentialsError(HTTPException):
    def __init__(self, detail: str = "Email and password are required"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class SecurityVerificationError(HTTPException):
    def __init__(self, detail: str = "Security verification failed"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class InvalidSessionError(HTTPException):
    def __init__(self, detail: str = "Invalid session"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class AdminAccessRequiredError(HTTPException):
    def __init__(self, detail: str = "Admin access required"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class UserSessionRequiredError(HTTPException):
    def __init__(self, detail: str = "Client session required"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class UserAlreadyExistsError(HTTPException):
    def __init__(self, detail: str = "User with this email already exists"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class RateLimitExceededError(HTTPException):
    def __init__(
        self,
        retry_after: int,
        detail: str = "Rate limit exceeded. Please try again later.",
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            headers={**(headers or {}), "Retry-After": str(retry_after)},
        )


class CsrfValidationError(HTTPException):
    def __init__(self, detail: str = "Invalid CSRF token"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

"""HTTP-facing application errors.

Raised from route handlers and dependencies; FastAPI renders them as
``{"detail": ...}`` with the attached status code.
"""

from fastapi import HTTPException


class AppError(HTTPException):
    status_code: int = 500
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None, headers: dict[str, str] | None = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail, headers=headers)


class BadRequestError(AppError):
    status_code = 400
    default_detail = "Bad request"


class UnauthorizedError(AppError):
    status_code = 401
    default_detail = "Not authenticated"

    def __init__(self, detail: str | None = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(AppError):
    status_code = 403
    default_detail = "Access denied"


class NotFoundError(AppError):
    status_code = 404
    default_detail = "Not found"

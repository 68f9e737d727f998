from typing import Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Base class for business errors, rendered by FastAPI as ``{"errors": detail}``."""

    code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=self.code, detail=detail or self.default_detail)


class BadRequestError(AppError):
    code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class UnauthorizedError(AppError):
    code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Not authenticated"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail)
        self.headers = {"WWW-Authenticate": "Bearer"}


class ForbiddenError(AppError):
    code = status.HTTP_403_FORBIDDEN
    default_detail = "You do not have permission to perform this action"


class NotFoundError(AppError):
    code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"


class ConflictError(AppError):
    code = status.HTTP_409_CONFLICT
    default_detail = "Resource already exists"


class InsufficientFundsError(AppError):
    code = status.HTTP_400_BAD_REQUEST
    default_detail = "Insufficient balance"


class InsufficientPointsError(AppError):
    code = status.HTTP_402_PAYMENT_REQUIRED
    default_detail = "User points are not enough"


class InternalError(AppError):
    pass

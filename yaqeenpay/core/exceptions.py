# yaqeenpay/core/exceptions.py

from fastapi import status


class YaqeenPayError(Exception):
    """Base class for errors raised by services"""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(YaqeenPayError):
    """Custom exception for validation errors"""
    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientFundsError(YaqeenPayError):
    status_code = status.HTTP_400_BAD_REQUEST


class CurrencyMismatchError(YaqeenPayError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(YaqeenPayError):
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(YaqeenPayError):
    status_code = status.HTTP_403_FORBIDDEN


class InvalidStateError(YaqeenPayError):
    """Raised when an entity is not in a state that allows the operation"""
    status_code = status.HTTP_409_CONFLICT


class AuthenticationError(YaqeenPayError):
    status_code = status.HTTP_401_UNAUTHORIZED

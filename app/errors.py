"""
Error taxonomy shared by the services and the API layer.

Services raise these; the exception handlers registered in main.py turn them
into ``{"detail": ...}`` JSON responses with the mapped status code. The
``detail`` string is what the client sees, so it stays short and generic.
Provider and database error text goes to the logs only.
"""

from fastapi import status


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Something went wrong. Please try again."

    def __init__(self, detail: str | None = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid request"


class PaymentRequiredError(AppError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    detail = "Purchase has not been completed"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Operation not allowed"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Not found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    detail = "Conflicting state"


class GenerationError(AppError):
    detail = "Failed to generate messages. Please try again."


class PersistenceError(AppError):
    detail = "Failed to save your request. Please try again."


class DeliveryError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    detail = "Failed to deliver the message. Please try again."


class PaymentError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    detail = "Failed to start payment. Please try again."


class ConfigurationError(RuntimeError):
    """Raised at startup when a provider cannot be configured."""

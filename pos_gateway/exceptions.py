"""
Gateway Exceptions

Every failure raised by the service layer derives from ``PosError`` so the
HTTP layer can translate it into a status code in one place.
"""

from typing import Optional


class PosError(Exception):
    """Base class for all gateway errors."""

    status_code: int = 400

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(PosError):
    """Request data failed a business rule before reaching the backend."""


class NotFoundError(PosError):
    """The requested row does not exist."""

    status_code = 404


# Postgres codes that mean the caller sent something the backend refused
CLIENT_ERROR_CODES = {
    "P0001": 400,  # RAISE EXCEPTION inside a procedure
    "P0002": 404,  # no_data_found
    "22P02": 400,  # invalid_text_representation
    "23502": 400,  # not_null_violation
    "23503": 400,  # foreign_key_violation
    "23505": 409,  # unique_violation
}


class BackendError(PosError):
    """
    The hosted backend rejected a request or could not be reached.

    Business rule failures raised by stored procedures map to 4xx via
    ``CLIENT_ERROR_CODES``; transport failures and unknown codes stay 502.

    Attributes:
        code: Backend error code (e.g. PostgREST/Postgres code) if provided
        status: HTTP status returned by the backend, if any
    """

    status_code = 502

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message, detail=detail)
        self.code = code
        self.status = status
        if code in CLIENT_ERROR_CODES:
            self.status_code = CLIENT_ERROR_CODES[code]


class OrderUpdateError(PosError):
    """The update_order_status procedure refused the transition."""


class OrderConflictError(OrderUpdateError):
    """The order changed since the caller read it (version mismatch)."""

    status_code = 409


class ShiftCloseError(PosError):
    """The close_shift_with_sales procedure reported a failure."""


class ChatServiceError(PosError):
    """The language model provider failed or is not configured."""

    status_code = 503

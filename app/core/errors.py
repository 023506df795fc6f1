from enum import Enum
from typing import Optional

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Issuance preconditions, each reported separately so callers can act
    BATCH_NOT_FOUND = "BATCH_NOT_FOUND"
    BATCH_REJECTED = "BATCH_REJECTED"
    BATCH_NOT_INSPECTED = "BATCH_NOT_INSPECTED"
    INSPECTION_NOT_PASSED = "INSPECTION_NOT_PASSED"
    CREDENTIAL_ALREADY_ISSUED = "CREDENTIAL_ALREADY_ISSUED"

    CREDENTIAL_NOT_FOUND = "CREDENTIAL_NOT_FOUND"
    INVALID_BATCH_STATE = "INVALID_BATCH_STATE"
    TEMPLATE_ALREADY_EXISTS = "TEMPLATE_ALREADY_EXISTS"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


DEFAULT_STATUS = {
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.BATCH_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BATCH_REJECTED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.BATCH_NOT_INSPECTED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INSPECTION_NOT_PASSED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CREDENTIAL_ALREADY_ISSUED: status.HTTP_409_CONFLICT,
    ErrorCode.CREDENTIAL_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVALID_BATCH_STATE: status.HTTP_409_CONFLICT,
    ErrorCode.TEMPLATE_ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorCode.EXTERNAL_SERVICE_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ServiceError(HTTPException):
    """
    An HTTPException carrying a machine-readable error code.
    The response body is {"detail": {"code": ..., "message": ...}}.
    """

    def __init__(self, code: ErrorCode, message: str, status_code: Optional[int] = None):
        self.code = code
        self.message = message
        super().__init__(
            status_code=status_code or DEFAULT_STATUS[code],
            detail={"code": code.value, "message": message},
        )


class ExternalServiceError(Exception):
    """Raised by the trust/wallet authority clients on any failed call."""

    code = ErrorCode.EXTERNAL_SERVICE_ERROR

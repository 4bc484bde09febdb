"""
Error Mapping
Converts domain errors into HTTP responses
"""
import logging
from typing import Dict, Type

from fastapi import HTTPException, status

from leadflow.domain.errors import (
    CRMError,
    FetchError,
    MutationInProgressError,
    NotFoundError,
    ParseError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; FetchError is a PersistenceError
STATUS_BY_ERROR: Dict[Type[CRMError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    FetchError: status.HTTP_502_BAD_GATEWAY,
    PersistenceError: status.HTTP_502_BAD_GATEWAY,
    ParseError: status.HTTP_400_BAD_REQUEST,
    MutationInProgressError: status.HTTP_409_CONFLICT,
}


def status_for(error: CRMError) -> int:
    for error_type, code in STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(error: CRMError) -> HTTPException:
    """HTTPException carrying the error's user-facing message"""
    code = status_for(error)
    if code >= 500:
        logger.error(f"{type(error).__name__}: {error.message}")
    
    if isinstance(error, ValidationError) and error.fields:
        return HTTPException(status_code=code, detail={"message": error.message, "fields": error.fields})
    return HTTPException(status_code=code, detail=error.message)

"""
Translate domain errors into HTTP responses.
"""

from typing import NoReturn

from fastapi import HTTPException, status

from statdesk.errors import PublishError, StatDeskError
from statdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def raise_http_error(error: StatDeskError, operation: str, **context) -> NoReturn:
    """Log a domain error and re-raise it as HTTPException with its status code."""
    if isinstance(error, PublishError) or error.status_code >= 500:
        logger.error(f"{operation} failed", error=str(error), error_code=error.error_code, **context)
    else:
        logger.info(
            f"{operation} rejected", error=str(error), error_code=error.error_code, **context
        )

    raise HTTPException(
        status_code=error.status_code,
        detail={"message": error.message, "error_code": error.error_code},
    ) from error


def raise_internal_error(error: Exception, operation: str, detail: str, **context) -> NoReturn:
    logger.error(f"{operation} failed unexpectedly", error=str(error), **context)
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=detail,
    ) from error

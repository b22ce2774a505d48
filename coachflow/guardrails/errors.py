import logging

from fastapi import HTTPException

from coachflow.core.errors import (
    InvalidActionTransitionError,
    MeetingNotFoundError,
    ProcessingConflictError,
    ProcessingError,
    RecordNotFoundError,
)

logger = logging.getLogger(__name__)


def as_http_500(e: Exception) -> HTTPException:
    """Log the exception and return a generic 500 (no internal details leaked)."""
    logger.error("unhandled_error", exc_info=e)
    return HTTPException(status_code=500, detail="Internal server error")


def as_http_error(e: Exception) -> HTTPException:
    """Map pipeline errors onto HTTP statuses: missing records 404, processing conflicts 409, bad action moves 400, failed runs 500 with the stage name."""
    if isinstance(e, (MeetingNotFoundError, RecordNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ProcessingConflictError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, InvalidActionTransitionError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ProcessingError):
        logger.error("processing_error", exc_info=e, extra={"stage": e.stage})
        return HTTPException(status_code=500, detail={"error": "Processing failed", "stage": e.stage})
    return as_http_500(e)

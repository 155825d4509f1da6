"""Translation of domain errors into HTTP responses."""

from __future__ import annotations

import logging

from fastapi import HTTPException

from buildwise.errors import BuildWiseError, InvalidInput, NotFound, StoreFailure, UnsupportedAction

logger = logging.getLogger(__name__)


def to_http_error(exc: BuildWiseError) -> HTTPException:
    """Map a domain error onto a status code: 400, 404 or 500."""
    if isinstance(exc, (InvalidInput, UnsupportedAction)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, StoreFailure):
        logger.error("Store failure while serving request: %s", exc)
        return HTTPException(status_code=500, detail="Internal storage error")
    return HTTPException(status_code=500, detail=str(exc))

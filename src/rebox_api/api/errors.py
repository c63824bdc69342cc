"""Translate rewards domain errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status
from loguru import logger

from rebox_api.services.rewards import (
    IdempotencyConflictError,
    RewardsAccountNotFoundError,
    RewardsError,
    StorageUnavailableError,
)


def to_http_exception(error: RewardsError) -> HTTPException:
    if isinstance(error, RewardsAccountNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.as_detail())
    if isinstance(error, IdempotencyConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error.as_detail())
    if isinstance(error, StorageUnavailableError):
        logger.warning("Rewards request failed on storage", code=error.code)
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": error.code, "message": "Rewards are temporarily unavailable, please retry"},
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.as_detail())

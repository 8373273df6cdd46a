# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Translate domain errors into HTTP responses.

Example:
    try:
        return await service.add_member(group_id, school_id, user_id)
    except ChatServiceError as e:
        raise to_http_exception(e)
"""

import logging

from fastapi import HTTPException, status

from src.core.errors import (
    ChatServiceError,
    ConflictError,
    ForbiddenError,
    InvalidError,
    NotFoundError,
    UnavailableError,
)

logger = logging.getLogger(__name__)

UNAVAILABLE_DETAIL = "The chat service is temporarily unavailable. Please try again."

_STATUS_BY_ERROR: tuple[tuple[type[ChatServiceError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InvalidError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (UnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def to_http_exception(error: ChatServiceError) -> HTTPException:
    """Map a domain error onto its HTTP status.

    Backend failures get a generic detail so driver messages never reach
    the client.
    """
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            if status_code == status.HTTP_503_SERVICE_UNAVAILABLE:
                logger.error("Backend unavailable: %s", error)
                return HTTPException(status_code=status_code, detail=UNAVAILABLE_DETAIL)
            return HTTPException(status_code=status_code, detail=str(error))

    logger.error("Unmapped chat service error: %s", error)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))

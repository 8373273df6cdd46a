# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push device registration endpoints.

- POST /devices - Register the caller's push token
- DELETE /devices/{token} - Remove one of the caller's push tokens
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_messaging_settings, require_auth
from src.api.errors import to_http_exception
from src.api.middleware.auth import CurrentUser
from src.core.config import MessagingSettings
from src.core.errors import ChatServiceError
from src.domains.devices import DeviceService
from src.models.device import DeviceRegisterRequest, DeviceResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_service(db: AsyncSession, settings: MessagingSettings) -> DeviceService:
    return DeviceService(db=db, timeout=settings.backend_timeout_seconds)


@router.post(
    "",
    response_model=DeviceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register device",
)
async def register_device(
    data: DeviceRegisterRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> DeviceResponse:
    service = _get_service(db, settings)
    try:
        return await service.register(current_user.id, data)
    except ChatServiceError as e:
        raise to_http_exception(e)


@router.delete(
    "/{token}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Unregister device",
)
async def unregister_device(
    token: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> None:
    service = _get_service(db, settings)
    try:
        deleted = await service.unregister(current_user.id, token)
    except ChatServiceError as e:
        raise to_http_exception(e)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")

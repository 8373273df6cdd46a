# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push device token registration.

A token identifies one app install. Re-registering a token that already
exists moves it to the caller, since the device may have changed hands.
"""

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ChatServiceError
from src.domains.backend import bounded
from src.domains.membership.resolver import DEFAULT_TIMEOUT_SECONDS
from src.infrastructure.database.models import DeviceToken, new_id
from src.models.device import DeviceRegisterRequest, DeviceResponse
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class DeviceService:
    """Registers and removes push tokens.

    Attributes:
        _db: Async database session.
        _timeout: Deadline applied to each backend call.
    """

    def __init__(self, db: AsyncSession, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._db = db
        self._timeout = timeout

    async def register(self, user_id: str, request: DeviceRegisterRequest) -> DeviceResponse:
        """Register a token for user_id, upserting on the token value.

        Raises:
            UnavailableError: If the write fails or times out.
        """
        stmt = select(DeviceToken).where(DeviceToken.token == request.token)
        result = await bounded(self._db.execute(stmt), self._timeout, "device lookup")
        device = result.scalar_one_or_none()

        if device is None:
            device = DeviceToken(
                id=new_id(),
                user_id=user_id,
                token=request.token,
                platform=request.platform,
                created_at=utc_now(),
            )
            self._db.add(device)
        else:
            device.user_id = user_id
            device.platform = request.platform

        try:
            await bounded(self._db.commit(), self._timeout, "device upsert")
        except ChatServiceError:
            await self._db.rollback()
            raise
        await self._db.refresh(device)

        logger.info("Registered %s device for user %s", request.platform, user_id)
        return DeviceResponse.model_validate(device)

    async def unregister(self, user_id: str, token: str) -> bool:
        """Remove one of the caller's tokens.

        Returns:
            True if a row was deleted.
        """
        stmt = delete(DeviceToken).where(
            DeviceToken.user_id == user_id,
            DeviceToken.token == token,
        )
        result = await bounded(self._db.execute(stmt), self._timeout, "device delete")
        await bounded(self._db.commit(), self._timeout, "device delete")
        return bool(result.rowcount)

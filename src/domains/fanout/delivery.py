# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push delivery for a newly posted group message.

Runs inside the notification worker. Resolves the group's current members
minus the sender, collects their device tokens and sends one push per
recipient. Recipients without a registered token are dropped.
"""

import logging
from collections import defaultdict
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database.models import DeviceToken, Group, GroupMember, Profile
from src.infrastructure.notifications.channels import (
    BaseChannel,
    DeliveryStatus,
    NotificationPayload,
)

logger = logging.getLogger(__name__)

PUSH_BODY_LENGTH = 120


class PushDeliveryService:
    """Sends push notifications to every other member of a group.

    Attributes:
        _db: Async database session.
        _channel: Channel used to deliver each notification.
    """

    def __init__(self, db: AsyncSession, channel: BaseChannel) -> None:
        self._db = db
        self._channel = channel

    async def deliver(
        self,
        group_id: str,
        school_id: str,
        sender_id: str,
        content: str,
    ) -> dict[str, Any]:
        """Notify all members of group_id except sender_id.

        Args:
            group_id: Group the message was posted in.
            school_id: School of the group.
            sender_id: Author; never notified.
            content: Message text used for the notification body.

        Returns:
            Summary with recipient, sent, failed, skipped and no_token counts.
        """
        summary: dict[str, Any] = {
            "group_id": group_id,
            "recipients": 0,
            "sent": 0,
            "failed": 0,
            "skipped": 0,
            "no_token": 0,
        }

        group_result = await self._db.execute(
            select(Group).where(Group.id == group_id, Group.school_id == school_id)
        )
        group = group_result.scalar_one_or_none()
        if group is None:
            logger.warning("Push skipped: group %s not found in school %s", group_id, school_id)
            summary["error"] = "group_not_found"
            return summary

        member_result = await self._db.execute(
            select(GroupMember.user_id).where(
                GroupMember.group_id == group_id,
                GroupMember.user_id != sender_id,
            )
        )
        recipient_ids = list(member_result.scalars().all())
        summary["recipients"] = len(recipient_ids)
        if not recipient_ids:
            return summary

        token_result = await self._db.execute(
            select(DeviceToken).where(DeviceToken.user_id.in_(recipient_ids))
        )
        tokens_by_user: dict[str, list[dict[str, str]]] = defaultdict(list)
        for device in token_result.scalars().all():
            tokens_by_user[device.user_id].append(
                {"token": device.token, "platform": device.platform or "android"}
            )

        sender = await self._db.get(Profile, sender_id)
        sender_name = (sender.full_name if sender else None) or "Someone"
        body = f"{sender_name}: {content}"
        if len(body) > PUSH_BODY_LENGTH:
            body = body[: PUSH_BODY_LENGTH - 3] + "..."

        for recipient_id in recipient_ids:
            tokens = tokens_by_user.get(recipient_id)
            if not tokens:
                summary["no_token"] += 1
                continue

            result = await self._channel.send(
                NotificationPayload(
                    title=group.name or "New message",
                    message=body,
                    recipient_id=recipient_id,
                    group_id=group_id,
                    school_id=school_id,
                    sender_id=sender_id,
                    push_tokens=tokens,
                )
            )
            if result.status == DeliveryStatus.SENT:
                summary["sent"] += 1
            elif result.status == DeliveryStatus.FAILED:
                summary["failed"] += 1
            else:
                summary["skipped"] += 1

        logger.info(
            "Push fan-out for group %s: %d recipients, %d sent, %d failed, %d without token",
            group_id,
            summary["recipients"],
            summary["sent"],
            summary["failed"],
            summary["no_token"],
        )
        return summary

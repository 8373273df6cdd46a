# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Read markers, read receipts and the conversation list.

A GroupRead row stores the last time a user opened a group. Unread counts
are the messages created after that instant, or after the group was
created when the user has never opened it.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.domains.backend import bounded
from src.domains.membership.resolver import DEFAULT_TIMEOUT_SECONDS
from src.infrastructure.database.models import Group, GroupMember, GroupRead, Message
from src.models.message import ChatSummary, ReadStatus
from src.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)

UNTITLED_GROUP = "Untitled Group"
NO_MESSAGES = "No messages yet"


class ReadService:
    """Tracks what each member has read.

    Attributes:
        _db: Async database session.
        _timeout: Deadline applied to each backend call.
    """

    def __init__(self, db: AsyncSession, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._db = db
        self._timeout = timeout

    async def mark_read(self, group_id: str, user_id: str) -> ReadStatus:
        """Record that user_id has read group_id up to now.

        Upserts on (group_id, user_id).

        Raises:
            UnavailableError: If the write fails or times out.
        """
        stmt = select(GroupRead).where(
            GroupRead.group_id == group_id,
            GroupRead.user_id == user_id,
        )
        result = await bounded(self._db.execute(stmt), self._timeout, "read marker lookup")
        marker = result.scalar_one_or_none()

        now = utc_now()
        if marker is None:
            marker = GroupRead(group_id=group_id, user_id=user_id, last_read_at=now)
            self._db.add(marker)
        else:
            marker.last_read_at = now

        await bounded(self._db.commit(), self._timeout, "read marker upsert")
        return ReadStatus(user_id=user_id, last_read_at=now)

    async def read_statuses(self, group_id: str) -> list[ReadStatus]:
        """Get every member's last read time for a group.

        Raises:
            UnavailableError: If the query fails or times out.
        """
        stmt = select(GroupRead).where(GroupRead.group_id == group_id)
        result = await bounded(self._db.execute(stmt), self._timeout, "read statuses")
        return [
            ReadStatus(user_id=row.user_id, last_read_at=ensure_utc(row.last_read_at))
            for row in result.scalars().all()
        ]

    async def list_chats(self, user_id: str, school_id: str) -> list[ChatSummary]:
        """Build the caller's conversation list.

        Only groups in the caller's school that the caller is a member of
        are included. Sorted by latest activity, newest first.

        Raises:
            UnavailableError: If any query fails or times out.
        """
        stmt = (
            select(Group)
            .join(GroupMember, GroupMember.group_id == Group.id)
            .where(GroupMember.user_id == user_id, Group.school_id == school_id)
        )
        result = await bounded(self._db.execute(stmt), self._timeout, "chat groups")
        groups = list(result.scalars().all())
        if not groups:
            return []

        group_ids = [group.id for group in groups]
        reads_stmt = select(GroupRead.group_id, GroupRead.last_read_at).where(
            GroupRead.user_id == user_id,
            GroupRead.group_id.in_(group_ids),
        )
        reads_result = await bounded(self._db.execute(reads_stmt), self._timeout, "chat reads")
        read_map = {row.group_id: row.last_read_at for row in reads_result.all()}

        chats = []
        for group in groups:
            latest_stmt = (
                select(Message.content, Message.created_at)
                .where(Message.group_id == group.id)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(1)
            )
            latest = (
                await bounded(self._db.execute(latest_stmt), self._timeout, "latest message")
            ).first()

            last_read = read_map.get(group.id) or group.created_at
            unread_stmt = select(func.count(Message.id)).where(
                Message.group_id == group.id,
                Message.created_at > last_read,
            )
            unread = (
                await bounded(self._db.execute(unread_stmt), self._timeout, "unread count")
            ).scalar() or 0

            chats.append(
                ChatSummary(
                    group_id=group.id,
                    name=group.name or UNTITLED_GROUP,
                    is_announcement=group.is_announcement,
                    last_message=latest.content if latest else NO_MESSAGES,
                    last_activity_at=ensure_utc(latest.created_at if latest else group.created_at),
                    unread_count=unread,
                )
            )

        chats.sort(key=lambda chat: chat.last_activity_at, reverse=True)
        return chats

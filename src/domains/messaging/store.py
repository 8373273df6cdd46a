# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Append-only message log per group.

Messages are ordered by (created_at, id). Within one process created_at
is strictly increasing, so two sends in the same microsecond still keep
their call order; across processes the id breaks ties deterministically.

History is paged backwards: the newest `limit` rows are fetched first
and each page is flipped to oldest-first before it is returned. A page
shorter than `limit` means the start of the log has been reached.

This module does not check send permission. Callers run the permission
gate first.

Example:
    >>> store = MessageStore(db)
    >>> message = await store.append(group_id, school_id, user_id, "Hello")
    >>> page = await store.fetch_page(group_id, school_id)
    >>> older = await store.fetch_page(
    ...     group_id, school_id, before=page.messages[0].created_at
    ... )
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.errors import InvalidMessageError
from src.domains.backend import bounded
from src.domains.membership.resolver import DEFAULT_TIMEOUT_SECONDS
from src.infrastructure.database.models import Message, Profile, new_id
from src.models.common import ProfileSummary
from src.models.message import MessagePage, MessageResponse
from src.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50

_last_created_at: datetime | None = None


def next_created_at() -> datetime:
    """Return a UTC timestamp strictly later than the previous one issued."""
    global _last_created_at
    now = utc_now()
    if _last_created_at is not None and now <= _last_created_at:
        now = _last_created_at + timedelta(microseconds=1)
    _last_created_at = now
    return now


def to_message_response(message: Message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        group_id=message.group_id,
        school_id=message.school_id,
        user_id=message.user_id,
        content=message.content,
        attachment_url=message.attachment_url,
        attachment_type=message.attachment_type,
        attachment_name=message.attachment_name,
        created_at=message.created_at,
        author=ProfileSummary.from_join(message.author),
    )


class MessageStore:
    """Append and page through a group's messages.

    Attributes:
        _db: Async database session.
        _timeout: Deadline applied to each backend call.
        _page_size: Default page length.
    """

    def __init__(
        self,
        db: AsyncSession,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self._db = db
        self._timeout = timeout
        self._page_size = page_size

    async def append(
        self,
        group_id: str,
        school_id: str,
        user_id: str,
        content: str,
        attachment_url: str | None = None,
        attachment_type: str | None = None,
        attachment_name: str | None = None,
    ) -> MessageResponse:
        """Persist one message and return it with its author.

        Args:
            group_id: Target group.
            school_id: School the group belongs to.
            user_id: Author profile id.
            content: Message text; must be non-empty after trimming.
            attachment_url: Optional uploaded file URL.
            attachment_type: Optional MIME type of the attachment.
            attachment_name: Optional original file name.

        Returns:
            The stored message with server-assigned id and created_at.

        Raises:
            InvalidMessageError: If content is blank. Raised before any
                backend call.
            UnavailableError: If the insert fails or times out.
        """
        content = content.strip()
        if not content:
            raise InvalidMessageError("Message content must not be empty")

        author = await bounded(self._db.get(Profile, user_id), self._timeout, "author lookup")

        message = Message(
            id=new_id(),
            group_id=group_id,
            school_id=school_id,
            user_id=user_id,
            content=content,
            attachment_url=attachment_url,
            attachment_type=attachment_type,
            attachment_name=attachment_name,
            created_at=next_created_at(),
        )
        message.author = author

        self._db.add(message)
        await bounded(self._db.commit(), self._timeout, "message insert")

        logger.info("Message %s appended to group %s by %s", message.id, group_id, user_id)
        return to_message_response(message)

    async def fetch_page(
        self,
        group_id: str,
        school_id: str,
        before: datetime | None = None,
        before_id: str | None = None,
        limit: int | None = None,
    ) -> MessagePage:
        """Fetch one page of history, oldest first.

        Args:
            group_id: Group to read.
            school_id: School the group belongs to.
            before: Only return messages strictly older than this instant.
                Omit for the newest page.
            before_id: Id of the message at `before`. When given, messages
                sharing that timestamp with a smaller id are included, so
                equal timestamps never fall between two pages.
            limit: Page length; defaults to the configured page size.

        Returns:
            MessagePage with has_more False once the log is exhausted.

        Raises:
            UnavailableError: If the query fails or times out.
        """
        limit = limit or self._page_size

        stmt = (
            select(Message)
            .options(selectinload(Message.author))
            .where(Message.group_id == group_id, Message.school_id == school_id)
        )

        if before is not None:
            before = ensure_utc(before)
            if before_id is not None:
                stmt = stmt.where(
                    or_(
                        Message.created_at < before,
                        and_(Message.created_at == before, Message.id < before_id),
                    )
                )
            else:
                stmt = stmt.where(Message.created_at < before)

        stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)

        result = await bounded(self._db.execute(stmt), self._timeout, "message page")
        rows = list(result.scalars().all())
        rows.reverse()

        return MessagePage(
            messages=[to_message_response(row) for row in rows],
            limit=limit,
            has_more=len(rows) == limit,
        )

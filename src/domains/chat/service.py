# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Chat service: the send and read paths of a group conversation.

Send path, in order:

    1. Truncate content at the input boundary and apply the attachment
       placeholder; blank content is rejected before any backend call.
    2. Resolve the caller's scope. The group must be in the caller's
       school, except for superadmins, who post into any school's groups.
    3. Ask the permission gate; a denial raises SendNotPermittedError.
    4. Non-admins must also be members.
    5. Append to the message store.
    6. Announce the message on the event bus and enqueue push fan-out.

Step 6 never fails the send.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import MessagingSettings
from src.core.errors import InvalidMessageError, NotMemberError, SendNotPermittedError
from src.domains.fanout.trigger import DeliveryFanoutTrigger
from src.domains.membership.resolver import MembershipResolver, Scope
from src.domains.messaging.reads import ReadService
from src.domains.messaging.store import MessageStore
from src.domains.permissions.gate import MessagePermissionGate
from src.infrastructure.events import EventBus, EventTypes, get_event_bus
from src.models.message import (
    ChatSummary,
    MessagePage,
    MessageResponse,
    ReadStatus,
    SendMessageRequest,
)

logger = logging.getLogger(__name__)

ATTACHMENT_PLACEHOLDER = "Sent an attachment"


def prepare_content(request: SendMessageRequest, max_length: int) -> str:
    """Normalize outgoing content.

    Content is trimmed and cut to max_length. An empty message that carries
    an attachment gets a placeholder text.

    Raises:
        InvalidMessageError: If there is neither text nor an attachment.
    """
    content = request.content.strip()[:max_length].strip()
    if not content and request.attachment_url:
        content = ATTACHMENT_PLACEHOLDER
    if not content:
        raise InvalidMessageError("Message content must not be empty")
    return content


class ChatService:
    """Sends, pages and marks read the messages of a group.

    Attributes:
        _settings: Messaging settings (page size, truncation, timeouts).
        _resolver: Scope and membership lookups.
        _gate: Send permission checks.
        _store: Message log.
        _reads: Read markers and the conversation list.
        _trigger: Push fan-out enqueuer.
        _events: Bus used to announce new messages and reads.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: MessagingSettings | None = None,
        trigger: DeliveryFanoutTrigger | None = None,
        events: EventBus | None = None,
    ) -> None:
        self._settings = settings or MessagingSettings()
        timeout = self._settings.backend_timeout_seconds

        self._resolver = MembershipResolver(db, timeout=timeout)
        self._gate = MessagePermissionGate(db, timeout=timeout, resolver=self._resolver)
        self._store = MessageStore(db, timeout=timeout, page_size=self._settings.page_size)
        self._reads = ReadService(db, timeout=timeout)
        self._trigger = trigger or DeliveryFanoutTrigger(timeout=timeout)
        self._events = events or get_event_bus()

    async def send_message(
        self,
        group_id: str,
        user_id: str,
        request: SendMessageRequest,
    ) -> MessageResponse:
        """Post a message to a group.

        Args:
            group_id: Target group.
            user_id: Sender profile id.
            request: Content and optional attachment.

        Returns:
            The stored message.

        Raises:
            InvalidMessageError: If the message is blank.
            ProfileNotFoundError: If the sender has no profile.
            GroupNotFoundError: If the group is not in the sender's school
                (any school for a superadmin).
            SendNotPermittedError: If the gate denies the send.
            NotMemberError: If a non-admin sender is not a member.
            UnavailableError: If the store fails or times out.
        """
        content = prepare_content(request, self._settings.max_content_length)

        scope = await self._resolver.resolve_scope(user_id, group_id)

        if not await self._gate.can_send(group_id, user_id):
            logger.info("Send denied for %s in group %s", user_id, group_id)
            raise SendNotPermittedError(group_id, user_id)

        if not scope.is_admin and not scope.is_member:
            raise NotMemberError(group_id, user_id)

        message = await self._store.append(
            group_id=group_id,
            school_id=scope.school_id,
            user_id=user_id,
            content=content,
            attachment_url=request.attachment_url,
            attachment_type=request.attachment_type,
            attachment_name=request.attachment_name,
        )

        await self._events.publish(
            EventTypes.Message.CREATED,
            {"group_id": group_id, "message_id": message.id, "user_id": user_id},
            school_id=scope.school_id,
        )
        await self._trigger.notify(group_id, scope.school_id, user_id, message.content)

        return message

    async def can_send(self, group_id: str, user_id: str) -> bool:
        return await self._gate.can_send(group_id, user_id)

    async def fetch_history(
        self,
        group_id: str,
        user_id: str,
        before: datetime | None = None,
        before_id: str | None = None,
        limit: int | None = None,
    ) -> MessagePage:
        """Fetch one page of a group's messages, oldest first.

        Reading requires membership regardless of role.

        Raises:
            GroupNotFoundError: If the group is not in the caller's school.
            NotMemberError: If the caller is not a member.
            UnavailableError: If the query fails or times out.
        """
        scope = await self._require_member(group_id, user_id)
        return await self._store.fetch_page(
            group_id,
            scope.school_id,
            before=before,
            before_id=before_id,
            limit=limit,
        )

    async def mark_read(self, group_id: str, user_id: str) -> ReadStatus:
        """Record that the caller has read the group up to now."""
        scope = await self._require_member(group_id, user_id)
        status = await self._reads.mark_read(group_id, user_id)
        await self._events.publish(
            EventTypes.Chat.READ,
            {"group_id": group_id, "user_id": user_id},
            school_id=scope.school_id,
        )
        return status

    async def read_statuses(self, group_id: str, user_id: str) -> list[ReadStatus]:
        await self._require_member(group_id, user_id)
        return await self._reads.read_statuses(group_id)

    async def list_chats(self, user_id: str, school_id: str) -> list[ChatSummary]:
        return await self._reads.list_chats(user_id, school_id)

    async def _require_member(self, group_id: str, user_id: str) -> Scope:
        scope = await self._resolver.resolve_scope(user_id, group_id)
        if not scope.is_member:
            raise NotMemberError(group_id, user_id)
        return scope

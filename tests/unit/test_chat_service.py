# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the chat service send and read paths."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from src.core.config import MessagingSettings
from src.core.errors import (
    GroupNotFoundError,
    InvalidMessageError,
    NotMemberError,
    SendNotPermittedError,
    UnavailableError,
)
from src.domains.chat import ChatService, prepare_content
from src.domains.chat.service import ATTACHMENT_PLACEHOLDER
from src.domains.fanout.trigger import DeliveryFanoutTrigger
from src.domains.membership import Scope
from src.infrastructure.events import EventBus, EventTypes
from src.models.message import MessagePage, MessageResponse, SendMessageRequest


def create_mock_result(value):
    """Create a mock query result returning value from scalar_one_or_none."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def make_response(group_id: str, school_id: str, user_id: str, content: str) -> MessageResponse:
    return MessageResponse(
        id=str(uuid4()),
        group_id=group_id,
        school_id=school_id,
        user_id=user_id,
        content=content,
        created_at=datetime.now(timezone.utc),
    )


@pytest.fixture
def settings():
    return MessagingSettings(max_content_length=20, backend_timeout_seconds=1.0)


@pytest.fixture
def trigger():
    trigger = MagicMock()
    trigger.notify = AsyncMock()
    return trigger


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def service(mock_db, settings, trigger, events, school_id, group_id, user_id):
    service = ChatService(mock_db, settings=settings, trigger=trigger, events=events)

    resolver = MagicMock()
    resolver.resolve_scope = AsyncMock(
        return_value=Scope(school_id=school_id, is_member=True, roles=frozenset({"parent"}))
    )
    service._resolver = resolver

    service._gate = MagicMock()
    service._gate.can_send = AsyncMock(return_value=True)

    service._store = MagicMock()
    service._store.append = AsyncMock(
        side_effect=lambda group_id, school_id, user_id, content, **kwargs: make_response(
            group_id, school_id, user_id, content
        )
    )
    service._store.fetch_page = AsyncMock(
        return_value=MessagePage(messages=[], limit=50, has_more=False)
    )

    service._reads = MagicMock()
    service._reads.mark_read = AsyncMock()
    service._reads.read_statuses = AsyncMock(return_value=[])
    return service


class TestPrepareContent:
    """Content normalization at the input boundary."""

    def test_trims_whitespace(self):
        assert prepare_content(SendMessageRequest(content="  hi  "), 500) == "hi"

    def test_truncates_to_max_length(self):
        assert prepare_content(SendMessageRequest(content="x" * 600), 500) == "x" * 500

    def test_attachment_placeholder(self):
        request = SendMessageRequest(content="   ", attachment_url="https://cdn/x.png")

        assert prepare_content(request, 500) == ATTACHMENT_PLACEHOLDER

    def test_blank_without_attachment_rejected(self):
        with pytest.raises(InvalidMessageError):
            prepare_content(SendMessageRequest(content=" \n\t "), 500)


class TestSendMessage:
    """Tests for ChatService.send_message."""

    @pytest.mark.asyncio
    async def test_send_success(self, service, trigger, events, group_id, user_id, school_id):
        received = []

        async def on_created(event):
            received.append(event)

        events.subscribe(EventTypes.Message.CREATED, on_created)

        message = await service.send_message(
            group_id, user_id, SendMessageRequest(content=" Hello class ")
        )

        assert message.content == "Hello class"
        service._store.append.assert_awaited_once()
        trigger.notify.assert_awaited_once_with(group_id, school_id, user_id, "Hello class")
        assert received[0].payload == {
            "group_id": group_id,
            "message_id": message.id,
            "user_id": user_id,
        }
        assert received[0].school_id == school_id

    @pytest.mark.asyncio
    async def test_long_content_truncated(self, service, group_id, user_id):
        message = await service.send_message(
            group_id, user_id, SendMessageRequest(content="a" * 50)
        )

        assert message.content == "a" * 20

    @pytest.mark.asyncio
    async def test_blank_rejected_before_any_backend_call(self, service, group_id, user_id):
        with pytest.raises(InvalidMessageError):
            await service.send_message(group_id, user_id, SendMessageRequest(content="   "))

        service._resolver.resolve_scope.assert_not_called()
        service._store.append.assert_not_called()

    @pytest.mark.asyncio
    async def test_gate_denial(self, service, trigger, group_id, user_id):
        service._gate.can_send.return_value = False

        with pytest.raises(SendNotPermittedError) as exc_info:
            await service.send_message(group_id, user_id, SendMessageRequest(content="hi"))

        assert "announcement group" in str(exc_info.value)
        service._store.append.assert_not_called()
        trigger.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_member_rejected(self, service, group_id, user_id, school_id):
        service._resolver.resolve_scope.return_value = Scope(
            school_id=school_id, is_member=False, roles=frozenset({"teacher"})
        )

        with pytest.raises(NotMemberError):
            await service.send_message(group_id, user_id, SendMessageRequest(content="hi"))

        service._store.append.assert_not_called()

    @pytest.mark.asyncio
    async def test_admin_may_send_without_membership(self, service, group_id, user_id, school_id):
        service._resolver.resolve_scope.return_value = Scope(
            school_id=school_id, is_member=False, roles=frozenset({"admin"})
        )

        message = await service.send_message(group_id, user_id, SendMessageRequest(content="hi"))

        assert message.content == "hi"

    @pytest.mark.asyncio
    async def test_unknown_group(self, service, group_id, user_id):
        service._resolver.resolve_scope.side_effect = GroupNotFoundError(group_id)

        with pytest.raises(GroupNotFoundError):
            await service.send_message(group_id, user_id, SendMessageRequest(content="hi"))

        service._gate.can_send.assert_not_called()

    @pytest.mark.asyncio
    async def test_store_failure_skips_fanout(self, service, trigger, group_id, user_id):
        service._store.append.side_effect = UnavailableError("message insert timed out")

        with pytest.raises(UnavailableError):
            await service.send_message(group_id, user_id, SendMessageRequest(content="hi"))

        trigger.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_fanout_failure_does_not_fail_send(
        self, mock_db, settings, events, group_id, user_id, school_id
    ):
        actor = MagicMock()
        actor.send.side_effect = ConnectionError("broker down")
        service = ChatService(
            mock_db,
            settings=settings,
            trigger=DeliveryFanoutTrigger(actor=actor, timeout=1.0),
            events=events,
        )
        service._resolver = MagicMock()
        service._resolver.resolve_scope = AsyncMock(
            return_value=Scope(school_id=school_id, is_member=True, roles=frozenset())
        )
        service._gate = MagicMock(can_send=AsyncMock(return_value=True))
        service._store = MagicMock(
            append=AsyncMock(return_value=make_response(group_id, school_id, user_id, "hi"))
        )

        message = await service.send_message(group_id, user_id, SendMessageRequest(content="hi"))

        assert message.content == "hi"
        actor.send.assert_called_once()


class TestAnnouncementScenario:
    """Grant changes take effect on the next send."""

    @pytest.mark.asyncio
    async def test_grant_flips_denial_to_success(
        self, mock_db, settings, trigger, events, school_id, user_id
    ):
        group = MagicMock()
        group.id = str(uuid4())
        group.is_announcement = True
        profile = MagicMock()
        profile.school_id = school_id

        service = ChatService(mock_db, settings=settings, trigger=trigger, events=events)
        resolver = MagicMock()
        resolver.resolve_scope = AsyncMock(
            return_value=Scope(school_id=school_id, is_member=True, roles=frozenset({"parent"}))
        )
        resolver.get_profile = AsyncMock(return_value=profile)
        resolver.get_roles = AsyncMock(return_value=frozenset({"parent"}))
        resolver.find_group = AsyncMock(return_value=group)
        service._resolver = resolver
        service._gate._resolver = resolver
        service._store = MagicMock(
            append=AsyncMock(return_value=make_response(group.id, school_id, user_id, "hi"))
        )

        mock_db.execute.return_value = create_mock_result(None)
        with pytest.raises(SendNotPermittedError):
            await service.send_message(group.id, user_id, SendMessageRequest(content="hi"))

        mock_db.execute.return_value = create_mock_result(True)
        message = await service.send_message(group.id, user_id, SendMessageRequest(content="hi"))

        assert message.group_id == group.id
        trigger.notify.assert_awaited_once()


class TestReadPath:
    """History and read markers require membership."""

    @pytest.mark.asyncio
    async def test_history_for_member(self, service, group_id, user_id, school_id):
        page = await service.fetch_history(group_id, user_id, limit=10)

        assert page.has_more is False
        service._store.fetch_page.assert_awaited_once_with(
            group_id, school_id, before=None, before_id=None, limit=10
        )

    @pytest.mark.asyncio
    async def test_history_requires_membership_even_for_admin(
        self, service, group_id, user_id, school_id
    ):
        service._resolver.resolve_scope.return_value = Scope(
            school_id=school_id, is_member=False, roles=frozenset({"admin"})
        )

        with pytest.raises(NotMemberError):
            await service.fetch_history(group_id, user_id)

    @pytest.mark.asyncio
    async def test_mark_read_publishes_event(self, service, events, group_id, user_id):
        received = []

        async def on_read(event):
            received.append(event.payload)

        events.subscribe(EventTypes.Chat.READ, on_read)

        await service.mark_read(group_id, user_id)

        service._reads.mark_read.assert_awaited_once_with(group_id, user_id)
        assert received == [{"group_id": group_id, "user_id": user_id}]

    @pytest.mark.asyncio
    async def test_read_statuses_requires_membership(self, service, group_id, user_id, school_id):
        service._resolver.resolve_scope.return_value = Scope(
            school_id=school_id, is_member=False, roles=frozenset()
        )

        with pytest.raises(NotMemberError):
            await service.read_statuses(group_id, user_id)

        service._reads.read_statuses.assert_not_called()

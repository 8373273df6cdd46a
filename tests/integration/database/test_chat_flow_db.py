# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for sending, paging and reading against a real schema."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from src.core.config import MessagingSettings
from src.core.errors import GroupNotFoundError, NotMemberError, SendNotPermittedError
from src.domains.chat import ChatService
from src.domains.groups import GroupService
from src.domains.messaging import MessageStore
from src.infrastructure.database.models import Message, Profile, UserRole, new_id
from src.infrastructure.events import EventBus
from src.models.group import GroupCreateRequest
from src.models.message import SendMessageRequest

pytestmark = pytest.mark.integration


@pytest.fixture
def trigger():
    trigger = MagicMock()
    trigger.notify = AsyncMock()
    return trigger


@pytest.fixture
def chat(db_session, trigger):
    return ChatService(
        db_session,
        settings=MessagingSettings(page_size=3, backend_timeout_seconds=5.0),
        trigger=trigger,
        events=EventBus(),
    )


@pytest_asyncio.fixture
async def groups(db_session):
    return GroupService(db_session, events=EventBus())


@pytest_asyncio.fixture
async def staff_group(groups, seed):
    return await groups.create_group(
        seed["school"],
        seed["admin"],
        GroupCreateRequest(name="Staff", member_ids=[seed["teacher"]]),
    )


@pytest_asyncio.fixture
async def announcements(groups, seed):
    return await groups.create_group(
        seed["school"],
        seed["admin"],
        GroupCreateRequest(
            name="Announcements",
            is_announcement=True,
            member_ids=[seed["teacher"], seed["parent"]],
        ),
    )


class TestHistoryOrdering:
    """Pages come back oldest first and cover the log exactly once."""

    @pytest.mark.asyncio
    async def test_pages_walk_back_through_log(self, chat, staff_group, seed):
        sent = []
        for i in range(7):
            message = await chat.send_message(
                staff_group.id, seed["teacher"], SendMessageRequest(content=f"message {i}")
            )
            sent.append(message.content)

        seen = []
        page = await chat.fetch_history(staff_group.id, seed["teacher"])
        while True:
            seen = [m.content for m in page.messages] + seen
            if not page.has_more:
                break
            oldest = page.messages[0]
            page = await chat.fetch_history(
                staff_group.id,
                seed["teacher"],
                before=oldest.created_at,
                before_id=oldest.id,
            )

        assert seen == sent

    @pytest.mark.asyncio
    async def test_created_at_strictly_increasing(self, chat, staff_group, seed):
        stamps = []
        for i in range(5):
            message = await chat.send_message(
                staff_group.id, seed["admin"], SendMessageRequest(content=f"m{i}")
            )
            stamps.append(message.created_at)

        assert all(a < b for a, b in zip(stamps, stamps[1:]))

    @pytest.mark.asyncio
    async def test_equal_timestamps_split_across_pages(self, db_session, staff_group, seed):
        instant = datetime(2030, 6, 1, 8, 0, tzinfo=timezone.utc)
        ids = sorted(new_id() for _ in range(4))
        for message_id in ids:
            db_session.add(
                Message(
                    id=message_id,
                    group_id=staff_group.id,
                    school_id=seed["school"],
                    user_id=seed["teacher"],
                    content=message_id,
                    created_at=instant,
                )
            )
        await db_session.commit()

        store = MessageStore(db_session, page_size=2)
        newest = await store.fetch_page(staff_group.id, seed["school"])
        older = await store.fetch_page(
            staff_group.id,
            seed["school"],
            before=newest.messages[0].created_at,
            before_id=newest.messages[0].id,
        )

        assert [m.id for m in older.messages + newest.messages] == ids

    @pytest.mark.asyncio
    async def test_author_is_denormalized(self, chat, staff_group, seed):
        await chat.send_message(staff_group.id, seed["teacher"], SendMessageRequest(content="hi"))

        page = await chat.fetch_history(staff_group.id, seed["admin"])

        assert page.messages[0].author.full_name == "Ms. Rivera"


class TestSendRules:
    """Permission and membership on the send path."""

    @pytest.mark.asyncio
    async def test_announcement_grant_flow(self, chat, groups, announcements, seed, trigger):
        with pytest.raises(SendNotPermittedError):
            await chat.send_message(
                announcements.id, seed["teacher"], SendMessageRequest(content="hello")
            )
        trigger.notify.assert_not_called()

        await groups.set_message_permission(
            announcements.id, seed["school"], seed["teacher"], True
        )
        message = await chat.send_message(
            announcements.id, seed["teacher"], SendMessageRequest(content="hello")
        )
        assert message.content == "hello"
        trigger.notify.assert_awaited_once()

        # The grant covers only this (group, user) pair
        with pytest.raises(SendNotPermittedError):
            await chat.send_message(
                announcements.id, seed["parent"], SendMessageRequest(content="me too")
            )
        notices = await groups.create_group(
            seed["school"],
            seed["admin"],
            GroupCreateRequest(
                name="Notices", is_announcement=True, member_ids=[seed["teacher"]]
            ),
        )
        with pytest.raises(SendNotPermittedError):
            await chat.send_message(
                notices.id, seed["teacher"], SendMessageRequest(content="hello")
            )
        trigger.notify.assert_awaited_once()

        await groups.set_message_permission(
            announcements.id, seed["school"], seed["teacher"], False
        )
        with pytest.raises(SendNotPermittedError):
            await chat.send_message(
                announcements.id, seed["teacher"], SendMessageRequest(content="again")
            )

    @pytest.mark.asyncio
    async def test_admin_posts_in_announcements(self, chat, announcements, seed):
        message = await chat.send_message(
            announcements.id, seed["admin"], SendMessageRequest(content="School closed Friday")
        )

        assert message.school_id == seed["school"]

    @pytest.mark.asyncio
    async def test_superadmin_posts_across_schools(self, chat, db_session, staff_group, seed):
        superadmin = new_id()
        db_session.add(Profile(id=superadmin, school_id=seed["other_school"], full_name="System"))
        db_session.add(UserRole(id=new_id(), user_id=superadmin, role="superadmin"))
        await db_session.commit()

        message = await chat.send_message(
            staff_group.id, superadmin, SendMessageRequest(content="Maintenance tonight")
        )

        assert message.school_id == seed["school"]
        with pytest.raises(GroupNotFoundError):
            await chat.send_message(
                staff_group.id, seed["outsider"], SendMessageRequest(content="hi")
            )

    @pytest.mark.asyncio
    async def test_non_member_cannot_send_or_read(self, chat, staff_group, seed):
        with pytest.raises(NotMemberError):
            await chat.send_message(
                staff_group.id, seed["parent"], SendMessageRequest(content="hi")
            )
        with pytest.raises(NotMemberError):
            await chat.fetch_history(staff_group.id, seed["parent"])

    @pytest.mark.asyncio
    async def test_other_school_sees_not_found(self, chat, staff_group, seed):
        with pytest.raises(GroupNotFoundError):
            await chat.send_message(
                staff_group.id, seed["outsider"], SendMessageRequest(content="hi")
            )


class TestReads:
    """Read markers and the conversation list."""

    @pytest.mark.asyncio
    async def test_unread_counts_reset_on_read(self, chat, staff_group, seed):
        for i in range(3):
            await chat.send_message(
                staff_group.id, seed["admin"], SendMessageRequest(content=f"note {i}")
            )

        chats = await chat.list_chats(seed["teacher"], seed["school"])
        assert len(chats) == 1
        assert chats[0].unread_count == 3
        assert chats[0].last_message == "note 2"

        await chat.mark_read(staff_group.id, seed["teacher"])

        chats = await chat.list_chats(seed["teacher"], seed["school"])
        assert chats[0].unread_count == 0

        statuses = await chat.read_statuses(staff_group.id, seed["admin"])
        assert [s.user_id for s in statuses] == [seed["teacher"]]

    @pytest.mark.asyncio
    async def test_empty_group_placeholder(self, chat, staff_group, seed):
        chats = await chat.list_chats(seed["teacher"], seed["school"])

        assert chats[0].last_message == "No messages yet"
        assert chats[0].unread_count == 0

    @pytest.mark.asyncio
    async def test_non_member_groups_excluded(self, chat, staff_group, seed):
        assert await chat.list_chats(seed["parent"], seed["school"]) == []

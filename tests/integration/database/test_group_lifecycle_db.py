# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for group lifecycle against a real schema."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from sqlalchemy import func, select

from src.api.dependencies import get_db, get_messaging_settings, require_auth
from src.api.middleware.auth import CurrentUser
from src.api.v1 import router as v1_router

from src.core.config import MessagingSettings
from src.core.errors import (
    AlreadyMemberError,
    ForbiddenError,
    GroupNotFoundError,
    MembershipNotFoundError,
    NotMemberError,
    ProfileNotFoundError,
)
from src.domains.auth.jwt import TokenPayload
from src.domains.chat import ChatService
from src.domains.devices import DeviceService
from src.domains.groups import GroupService
from src.infrastructure.database.models import (
    Group,
    GroupMember,
    GroupMessagePermission,
    GroupRead,
    Message,
)
from src.infrastructure.events import EventBus
from src.models.device import DeviceRegisterRequest
from src.models.group import GroupCreateRequest
from src.models.message import SendMessageRequest

pytestmark = pytest.mark.integration


async def count_rows(session, model, group_id: str) -> int:
    column = model.id if model is Group else model.group_id
    result = await session.execute(select(func.count()).select_from(model).where(column == group_id))
    return result.scalar()


@pytest.fixture
def groups(db_session):
    return GroupService(db_session, events=EventBus())


class TestCreateAndList:
    @pytest.mark.asyncio
    async def test_create_adds_creator(self, groups, seed):
        group = await groups.create_group(
            seed["school"], seed["teacher"], GroupCreateRequest(name="Year 4")
        )

        members = await groups.list_members(group.id, seed["school"])

        assert [m.user_id for m in members] == [seed["teacher"]]
        assert members[0].roles == ["teacher"]
        assert members[0].profile.full_name == "Ms. Rivera"

    @pytest.mark.asyncio
    async def test_member_from_other_school_rejected(self, groups, db_session, seed):
        with pytest.raises(ProfileNotFoundError):
            await groups.create_group(
                seed["school"],
                seed["admin"],
                GroupCreateRequest(name="Mixed", member_ids=[seed["outsider"]]),
            )

        result = await db_session.execute(select(func.count()).select_from(Group))
        assert result.scalar() == 0

    @pytest.mark.asyncio
    async def test_list_is_school_scoped_with_counts(self, groups, seed):
        await groups.create_group(
            seed["school"],
            seed["admin"],
            GroupCreateRequest(name="Staff", member_ids=[seed["teacher"]]),
        )
        await groups.create_group(
            seed["other_school"], seed["outsider"], GroupCreateRequest(name="Elsewhere")
        )

        listed = await groups.list_groups(seed["school"])

        assert [g.name for g in listed] == ["Staff"]
        assert listed[0].member_count == 2

    @pytest.mark.asyncio
    async def test_get_from_other_school_is_not_found(self, groups, seed):
        group = await groups.create_group(
            seed["school"], seed["admin"], GroupCreateRequest(name="Staff")
        )

        with pytest.raises(GroupNotFoundError):
            await groups.get_group(group.id, seed["other_school"])


class TestMembership:
    @pytest.mark.asyncio
    async def test_add_then_duplicate(self, groups, seed):
        group = await groups.create_group(
            seed["school"], seed["admin"], GroupCreateRequest(name="Staff")
        )

        added = await groups.add_member(group.id, seed["school"], seed["teacher"])
        assert added.user_id == seed["teacher"]

        with pytest.raises(AlreadyMemberError):
            await groups.add_member(group.id, seed["school"], seed["teacher"])

    @pytest.mark.asyncio
    async def test_join_public_only(self, groups, seed):
        private = await groups.create_group(
            seed["school"], seed["admin"], GroupCreateRequest(name="Private")
        )
        public = await groups.create_group(
            seed["school"], seed["admin"], GroupCreateRequest(name="Open", is_public=True)
        )

        with pytest.raises(ForbiddenError):
            await groups.join_group(private.id, seed["school"], seed["parent"])

        joined = await groups.join_group(public.id, seed["school"], seed["parent"])
        assert joined.group_id == public.id

    @pytest.mark.asyncio
    async def test_remove_and_leave(self, groups, seed):
        group = await groups.create_group(
            seed["school"],
            seed["admin"],
            GroupCreateRequest(name="Staff", member_ids=[seed["teacher"], seed["parent"]]),
        )
        members = {m.user_id: m for m in await groups.list_members(group.id, seed["school"])}

        await groups.remove_member(group.id, seed["school"], members[seed["parent"]].id)
        await groups.leave_group(group.id, seed["school"], seed["teacher"])

        remaining = await groups.list_members(group.id, seed["school"])
        assert [m.user_id for m in remaining] == [seed["admin"]]

        with pytest.raises(MembershipNotFoundError):
            await groups.leave_group(group.id, seed["school"], seed["teacher"])

    @pytest.mark.asyncio
    async def test_grant_shows_on_roster(self, groups, seed):
        group = await groups.create_group(
            seed["school"],
            seed["admin"],
            GroupCreateRequest(name="News", is_announcement=True, member_ids=[seed["teacher"]]),
        )

        await groups.set_message_permission(group.id, seed["school"], seed["teacher"], True)

        members = {m.user_id: m for m in await groups.list_members(group.id, seed["school"])}
        assert members[seed["teacher"]].can_send_messages is True
        assert members[seed["admin"]].can_send_messages is False


class TestVisibility:
    """Non-admins only see public groups and groups they belong to."""

    @pytest_asyncio.fixture
    async def staff(self, groups, seed):
        return await groups.create_group(
            seed["school"],
            seed["admin"],
            GroupCreateRequest(name="Staff", member_ids=[seed["teacher"]]),
        )

    @pytest.mark.asyncio
    async def test_list_hides_private_groups_from_non_members(self, groups, staff, seed):
        await groups.create_group(
            seed["school"], seed["admin"], GroupCreateRequest(name="Open", is_public=True)
        )

        parent_view = await groups.list_groups(seed["school"], seed["parent"])
        teacher_view = await groups.list_groups(seed["school"], seed["teacher"])
        admin_view = await groups.list_groups(seed["school"])

        assert [g.name for g in parent_view] == ["Open"]
        assert sorted(g.name for g in teacher_view) == ["Open", "Staff"]
        assert sorted(g.name for g in admin_view) == ["Open", "Staff"]

    @pytest.mark.asyncio
    async def test_private_group_hidden_from_non_member(self, groups, staff, seed):
        with pytest.raises(GroupNotFoundError):
            await groups.get_group(staff.id, seed["school"], seed["parent"])

        seen = await groups.get_group(staff.id, seed["school"], seed["teacher"])
        assert seen.name == "Staff"

    @pytest.mark.asyncio
    async def test_roster_requires_membership(self, groups, staff, seed):
        with pytest.raises(NotMemberError):
            await groups.list_members(staff.id, seed["school"], seed["parent"])

        members = await groups.list_members(staff.id, seed["school"], seed["teacher"])
        assert {m.user_id for m in members} == {seed["admin"], seed["teacher"]}

    @pytest.mark.asyncio
    async def test_router_denies_parent(self, db_session, staff, seed):
        parent = CurrentUser(
            TokenPayload(
                sub=seed["parent"],
                type="access",
                school_id=seed["school"],
                roles=["parent"],
                exp=0,
                iat=0,
                jti="test",
            )
        )
        app = FastAPI()
        app.include_router(v1_router)

        async def override_db():
            yield db_session

        app.dependency_overrides[get_db] = override_db
        app.dependency_overrides[require_auth] = lambda: parent
        app.dependency_overrides[get_messaging_settings] = lambda: MessagingSettings()

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            members = await client.get(f"/api/v1/groups/{staff.id}/members")
            group = await client.get(f"/api/v1/groups/{staff.id}")
            listed = await client.get("/api/v1/groups")

        assert members.status_code == 403
        assert "Ms. Rivera" not in members.text
        assert group.status_code == 404
        assert listed.status_code == 200
        assert listed.json()["items"] == []


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_cascades(self, groups, db_session, seed):
        group = await groups.create_group(
            seed["school"],
            seed["admin"],
            GroupCreateRequest(name="Trip", member_ids=[seed["teacher"]]),
        )
        trigger = MagicMock(notify=AsyncMock())
        chat = ChatService(
            db_session, settings=MessagingSettings(), trigger=trigger, events=EventBus()
        )
        await chat.send_message(group.id, seed["teacher"], SendMessageRequest(content="Bring a hat"))
        await chat.mark_read(group.id, seed["teacher"])
        await groups.set_message_permission(group.id, seed["school"], seed["teacher"], True)

        await groups.delete_group(group.id, seed["school"])

        for model in (Group, GroupMember, Message, GroupRead, GroupMessagePermission):
            assert await count_rows(db_session, model, group.id) == 0

    @pytest.mark.asyncio
    async def test_delete_from_other_school_is_not_found(self, groups, db_session, seed):
        group = await groups.create_group(
            seed["school"], seed["admin"], GroupCreateRequest(name="Staff")
        )

        with pytest.raises(GroupNotFoundError):
            await groups.delete_group(group.id, seed["other_school"])

        assert await count_rows(db_session, Group, group.id) == 1


class TestDevices:
    @pytest.mark.asyncio
    async def test_token_moves_between_users(self, db_session, seed):
        devices = DeviceService(db_session)

        first = await devices.register(seed["teacher"], DeviceRegisterRequest(token="fcm-abc"))
        second = await devices.register(
            seed["parent"], DeviceRegisterRequest(token="fcm-abc", platform="ios")
        )

        assert first.id == second.id
        assert second.user_id == seed["parent"]
        assert second.platform == "ios"

        assert await devices.unregister(seed["teacher"], "fcm-abc") is False
        assert await devices.unregister(seed["parent"], "fcm-abc") is True

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Group lifecycle service.

This module provides the GroupService class for:
- Group creation with the creator as first member
- Group listing with member counts, and cascade deletion
- Membership add, remove and leave
- Message permission grants for announcement groups

Multi-step operations (create + self-membership, the members → messages →
group cascade) run inside one session transaction and are rolled back as a
whole when any step fails.
"""

import logging

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.errors import (
    AlreadyMemberError,
    ChatServiceError,
    ForbiddenError,
    GroupNotFoundError,
    MembershipNotFoundError,
    NotMemberError,
    ProfileNotFoundError,
)
from src.domains.backend import bounded
from src.domains.membership.resolver import DEFAULT_TIMEOUT_SECONDS, MembershipResolver
from src.infrastructure.database.models import (
    Group,
    GroupMember,
    GroupMessagePermission,
    GroupRead,
    Message,
    Profile,
    UserRole,
    new_id,
)
from src.infrastructure.events import EventBus, EventTypes, get_event_bus
from src.models.common import ProfileSummary
from src.models.group import (
    GroupCreateRequest,
    GroupResponse,
    MemberResponse,
    MessagePermissionResponse,
)
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class GroupService:
    """Service for managing groups and their rosters.

    Every method takes the caller's school_id and only ever touches groups
    in that school; a group from another school raises GroupNotFoundError.

    Attributes:
        _db: Async database session.
        _timeout: Deadline applied to each backend call.
        _resolver: Profile and group lookups.
        _events: Bus used to announce roster and list changes.
    """

    def __init__(
        self,
        db: AsyncSession,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        events: EventBus | None = None,
    ) -> None:
        self._db = db
        self._timeout = timeout
        self._resolver = MembershipResolver(db, timeout=timeout)
        self._events = events or get_event_bus()

    async def create_group(
        self,
        school_id: str,
        creator_id: str,
        request: GroupCreateRequest,
    ) -> GroupResponse:
        """Create a group and add its creator as the first member.

        Args:
            school_id: School the group belongs to.
            creator_id: Profile creating the group.
            request: Group attributes and optional extra members.

        Returns:
            The created group.

        Raises:
            ProfileNotFoundError: If a member id is not a profile in the school.
            UnavailableError: If the transaction fails; nothing is persisted.
        """
        member_ids = [creator_id]
        for user_id in request.member_ids:
            if user_id not in member_ids:
                member_ids.append(user_id)

        try:
            await self._require_profiles(school_id, member_ids[1:])

            group = Group(
                id=new_id(),
                school_id=school_id,
                name=request.name.strip(),
                description=request.description,
                is_public=request.is_public,
                is_announcement=request.is_announcement,
                created_by=creator_id,
                created_at=utc_now(),
            )
            self._db.add(group)
            for user_id in member_ids:
                self._db.add(GroupMember(group_id=group.id, user_id=user_id, joined_at=utc_now()))

            await bounded(self._db.commit(), self._timeout, "group create")
        except ChatServiceError:
            await self._db.rollback()
            raise

        logger.info(
            "Created group %s (%s) in school %s with %d members",
            group.name,
            group.id,
            school_id,
            len(member_ids),
        )
        await self._events.publish(
            EventTypes.Group.CREATED,
            {"group_id": group.id},
            school_id=school_id,
        )

        response = GroupResponse.model_validate(group)
        response.member_count = len(member_ids)
        return response

    async def list_groups(
        self,
        school_id: str,
        viewer_id: str | None = None,
    ) -> list[GroupResponse]:
        """List a school's groups with member counts, newest first.

        Args:
            school_id: Caller's school.
            viewer_id: Restrict the list to public groups and groups this
                profile belongs to. None lists every group (admins).

        Raises:
            UnavailableError: If the query fails or times out.
        """
        member_count = func.count(GroupMember.id).label("member_count")
        stmt = (
            select(Group, member_count)
            .outerjoin(GroupMember, GroupMember.group_id == Group.id)
            .where(Group.school_id == school_id)
            .group_by(Group.id)
            .order_by(Group.created_at.desc(), Group.id.desc())
        )
        if viewer_id is not None:
            joined = select(GroupMember.group_id).where(GroupMember.user_id == viewer_id)
            stmt = stmt.where(or_(Group.is_public.is_(True), Group.id.in_(joined)))
        result = await bounded(self._db.execute(stmt), self._timeout, "group list")

        groups = []
        for group, count in result.all():
            response = GroupResponse.model_validate(group)
            response.member_count = count
            groups.append(response)
        return groups

    async def get_group(
        self,
        group_id: str,
        school_id: str,
        viewer_id: str | None = None,
    ) -> GroupResponse:
        """Get a group with its member count.

        A private group is hidden from a viewer_id that is not a member.

        Raises:
            GroupNotFoundError: If absent, in another school, or hidden.
            UnavailableError: If the query fails or times out.
        """
        group = await self._resolver.get_group(group_id, school_id)
        if (
            viewer_id is not None
            and not group.is_public
            and not await self._resolver.is_member(group_id, viewer_id)
        ):
            raise GroupNotFoundError(group_id)
        stmt = select(func.count(GroupMember.id)).where(GroupMember.group_id == group_id)
        result = await bounded(self._db.execute(stmt), self._timeout, "member count")

        response = GroupResponse.model_validate(group)
        response.member_count = result.scalar() or 0
        return response

    async def delete_group(self, group_id: str, school_id: str) -> None:
        """Delete a group with its memberships and messages.

        Memberships go first, then messages, then the group's read markers
        and grants, then the group row. All steps commit together.

        Raises:
            GroupNotFoundError: If absent or in another school.
            UnavailableError: If any step fails; nothing is deleted.
        """
        await self._resolver.get_group(group_id, school_id)

        steps = (
            ("membership delete", delete(GroupMember).where(GroupMember.group_id == group_id)),
            ("message delete", delete(Message).where(Message.group_id == group_id)),
            ("read marker delete", delete(GroupRead).where(GroupRead.group_id == group_id)),
            (
                "grant delete",
                delete(GroupMessagePermission).where(GroupMessagePermission.group_id == group_id),
            ),
            ("group delete", delete(Group).where(Group.id == group_id)),
        )

        try:
            for operation, stmt in steps:
                await bounded(self._db.execute(stmt), self._timeout, operation)
            await bounded(self._db.commit(), self._timeout, "group delete")
        except ChatServiceError:
            await self._db.rollback()
            raise

        logger.info("Deleted group %s in school %s", group_id, school_id)
        await self._events.publish(
            EventTypes.Group.DELETED,
            {"group_id": group_id},
            school_id=school_id,
        )

    async def add_member(self, group_id: str, school_id: str, user_id: str) -> MemberResponse:
        """Add a profile to a group.

        Args:
            group_id: Target group.
            school_id: Caller's school.
            user_id: Profile to add; must belong to the same school.

        Returns:
            The new membership.

        Raises:
            GroupNotFoundError: If the group is absent or in another school.
            ProfileNotFoundError: If the profile is not in the school.
            AlreadyMemberError: If the profile is already a member.
            UnavailableError: If the write fails or times out.
        """
        await self._resolver.get_group(group_id, school_id)
        await self._require_profiles(school_id, [user_id])

        if await self._resolver.is_member(group_id, user_id):
            raise AlreadyMemberError(group_id, user_id)

        membership = GroupMember(
            id=new_id(), group_id=group_id, user_id=user_id, joined_at=utc_now()
        )
        self._db.add(membership)
        try:
            await bounded(self._db.commit(), self._timeout, "member add")
        except ChatServiceError as e:
            await self._db.rollback()
            # Lost a race with a concurrent add of the same user
            if isinstance(e.__cause__, IntegrityError):
                raise AlreadyMemberError(group_id, user_id) from e
            raise
        await self._db.refresh(membership)

        logger.info("Added %s to group %s", user_id, group_id)
        await self._members_changed(group_id, school_id)

        return MemberResponse(
            id=membership.id,
            group_id=group_id,
            user_id=user_id,
            joined_at=membership.joined_at,
        )

    async def join_group(self, group_id: str, school_id: str, user_id: str) -> MemberResponse:
        """Add the caller to a public group.

        Raises:
            GroupNotFoundError: If the group is absent or in another school.
            ForbiddenError: If the group is not public.
            AlreadyMemberError: If the caller is already a member.
        """
        group = await self._resolver.get_group(group_id, school_id)
        if not group.is_public:
            raise ForbiddenError("Only public groups can be joined without an admin.")
        return await self.add_member(group_id, school_id, user_id)

    async def remove_member(self, group_id: str, school_id: str, membership_id: str) -> None:
        """Hard-delete a membership row.

        Raises:
            GroupNotFoundError: If the group is absent or in another school.
            MembershipNotFoundError: If the membership is not in this group.
            UnavailableError: If the delete fails or times out.
        """
        await self._resolver.get_group(group_id, school_id)

        stmt = select(GroupMember).where(
            GroupMember.id == membership_id,
            GroupMember.group_id == group_id,
        )
        result = await bounded(self._db.execute(stmt), self._timeout, "membership lookup")
        membership = result.scalar_one_or_none()
        if membership is None:
            raise MembershipNotFoundError(f"Membership not found: {membership_id}")

        await self._delete_membership(membership)
        logger.info("Removed membership %s from group %s", membership_id, group_id)
        await self._members_changed(group_id, school_id)

    async def leave_group(self, group_id: str, school_id: str, user_id: str) -> None:
        """Delete the caller's own membership.

        Raises:
            GroupNotFoundError: If the group is absent or in another school.
            MembershipNotFoundError: If the caller is not a member.
        """
        await self._resolver.get_group(group_id, school_id)

        membership = await self._resolver.get_membership(group_id, user_id)
        if membership is None:
            raise MembershipNotFoundError(f"User {user_id} is not a member of group {group_id}")

        await self._delete_membership(membership)
        logger.info("User %s left group %s", user_id, group_id)
        await self._members_changed(group_id, school_id)

    async def list_members(
        self,
        group_id: str,
        school_id: str,
        viewer_id: str | None = None,
    ) -> list[MemberResponse]:
        """List members with their profile, roles and send flag.

        Args:
            group_id: Target group.
            school_id: Caller's school.
            viewer_id: Profile that must be a member to see the roster.
                None skips the check (admins).

        Raises:
            GroupNotFoundError: If the group is absent or in another school.
            NotMemberError: If viewer_id is not a member.
            UnavailableError: If a query fails or times out.
        """
        await self._resolver.get_group(group_id, school_id)
        if viewer_id is not None and not await self._resolver.is_member(group_id, viewer_id):
            raise NotMemberError(group_id, viewer_id)

        stmt = (
            select(GroupMember)
            .options(selectinload(GroupMember.profile))
            .where(GroupMember.group_id == group_id)
            .order_by(GroupMember.joined_at, GroupMember.id)
        )
        result = await bounded(self._db.execute(stmt), self._timeout, "member list")
        memberships = list(result.scalars().all())
        if not memberships:
            return []

        user_ids = [m.user_id for m in memberships]

        roles_stmt = select(UserRole.user_id, UserRole.role).where(UserRole.user_id.in_(user_ids))
        roles_result = await bounded(self._db.execute(roles_stmt), self._timeout, "role lookup")
        roles: dict[str, list[str]] = {}
        for user_id, role in roles_result.all():
            roles.setdefault(user_id, []).append(role)

        grants_stmt = select(GroupMessagePermission.user_id).where(
            GroupMessagePermission.group_id == group_id,
            GroupMessagePermission.can_send_messages.is_(True),
        )
        grants_result = await bounded(self._db.execute(grants_stmt), self._timeout, "grant lookup")
        granted = set(grants_result.scalars().all())

        return [
            MemberResponse(
                id=m.id,
                group_id=m.group_id,
                user_id=m.user_id,
                joined_at=m.joined_at,
                profile=ProfileSummary.from_join(m.profile),
                roles=sorted(roles.get(m.user_id, [])),
                can_send_messages=m.user_id in granted,
            )
            for m in memberships
        ]

    async def set_message_permission(
        self,
        group_id: str,
        school_id: str,
        user_id: str,
        can_send_messages: bool,
    ) -> MessagePermissionResponse:
        """Create or update a user's send grant for a group.

        Setting the flag back to False keeps the row.

        Raises:
            GroupNotFoundError: If the group is absent or in another school.
            ProfileNotFoundError: If the user is not a profile in the school.
            UnavailableError: If the write fails or times out.
        """
        await self._resolver.get_group(group_id, school_id)
        await self._require_profiles(school_id, [user_id])

        stmt = select(GroupMessagePermission).where(
            GroupMessagePermission.group_id == group_id,
            GroupMessagePermission.user_id == user_id,
        )
        result = await bounded(self._db.execute(stmt), self._timeout, "grant lookup")
        grant = result.scalar_one_or_none()

        if grant is None:
            grant = GroupMessagePermission(
                group_id=group_id,
                user_id=user_id,
                can_send_messages=can_send_messages,
            )
            self._db.add(grant)
        else:
            grant.can_send_messages = can_send_messages

        try:
            await bounded(self._db.commit(), self._timeout, "grant upsert")
        except ChatServiceError:
            await self._db.rollback()
            raise

        logger.info(
            "Set can_send_messages=%s for %s in group %s",
            can_send_messages,
            user_id,
            group_id,
        )
        await self._events.publish(
            EventTypes.Group.PERMISSIONS_CHANGED,
            {"group_id": group_id, "user_id": user_id},
            school_id=school_id,
        )

        return MessagePermissionResponse(
            group_id=group_id,
            user_id=user_id,
            can_send_messages=can_send_messages,
        )

    async def _require_profiles(self, school_id: str, user_ids: list[str]) -> None:
        if not user_ids:
            return
        stmt = select(Profile.id).where(Profile.id.in_(user_ids), Profile.school_id == school_id)
        result = await bounded(self._db.execute(stmt), self._timeout, "profile lookup")
        found = set(result.scalars().all())
        for user_id in user_ids:
            if user_id not in found:
                raise ProfileNotFoundError(user_id)

    async def _delete_membership(self, membership: GroupMember) -> None:
        await self._db.delete(membership)
        try:
            await bounded(self._db.commit(), self._timeout, "membership delete")
        except ChatServiceError:
            await self._db.rollback()
            raise

    async def _members_changed(self, group_id: str, school_id: str) -> None:
        await self._events.publish(
            EventTypes.Group.MEMBERS_CHANGED,
            {"group_id": group_id},
            school_id=school_id,
        )

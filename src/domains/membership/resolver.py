# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Membership and role resolution.

Answers "which school is this user in, which roles do they hold, and are
they a member of this group". Groups are looked up inside the caller's own
school, so a group id from another school is indistinguishable from one
that does not exist. Superadmins are the exception and reach every school.

Example:
    >>> resolver = MembershipResolver(db)
    >>> scope = await resolver.resolve_scope(user_id, group_id)
    >>> scope.is_member, scope.roles
    (True, frozenset({'teacher'}))
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import GroupNotFoundError, ProfileNotFoundError
from src.domains.backend import bounded
from src.infrastructure.database.models import Group, GroupMember, Profile, UserRole
from src.models.common import ADMIN_ROLES, RoleTag

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class Scope:
    """Resolved relationship between a user and a group.

    Attributes:
        school_id: School of the group. Matches the user's own school except
            for superadmins.
        is_member: Whether a membership row exists.
        roles: Every role tag held by the profile.
    """

    school_id: str
    is_member: bool
    roles: frozenset[str]

    @property
    def is_admin(self) -> bool:
        return bool(self.roles & ADMIN_ROLES)


class MembershipResolver:
    """Looks up profiles, roles, groups and memberships.

    Attributes:
        _db: Async database session.
        _timeout: Deadline applied to each lookup.
    """

    def __init__(self, db: AsyncSession, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._db = db
        self._timeout = timeout

    async def get_profile(self, user_id: str) -> Profile | None:
        """Get a profile by id.

        Raises:
            UnavailableError: If the lookup fails or times out.
        """
        stmt = select(Profile).where(Profile.id == user_id)
        result = await bounded(self._db.execute(stmt), self._timeout, "profile lookup")
        return result.scalar_one_or_none()

    async def get_roles(self, user_id: str) -> frozenset[str]:
        """Get every role tag held by a profile.

        Raises:
            UnavailableError: If the lookup fails or times out.
        """
        stmt = select(UserRole.role).where(UserRole.user_id == user_id)
        result = await bounded(self._db.execute(stmt), self._timeout, "role lookup")
        return frozenset(result.scalars().all())

    async def find_group(self, group_id: str, school_id: str) -> Group | None:
        """Get a group if it exists in the given school.

        Raises:
            UnavailableError: If the lookup fails or times out.
        """
        stmt = select(Group).where(Group.id == group_id, Group.school_id == school_id)
        result = await bounded(self._db.execute(stmt), self._timeout, "group lookup")
        return result.scalar_one_or_none()

    async def get_group(self, group_id: str, school_id: str) -> Group:
        """Get a group in the given school.

        Raises:
            GroupNotFoundError: If absent or owned by another school.
            UnavailableError: If the lookup fails or times out.
        """
        group = await self.find_group(group_id, school_id)
        if group is None:
            raise GroupNotFoundError(group_id)
        return group

    async def get_membership(self, group_id: str, user_id: str) -> GroupMember | None:
        """Get the membership row for (group, user), if any.

        Raises:
            UnavailableError: If the lookup fails or times out.
        """
        stmt = select(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )
        result = await bounded(self._db.execute(stmt), self._timeout, "membership lookup")
        return result.scalar_one_or_none()

    async def is_member(self, group_id: str, user_id: str) -> bool:
        return await self.get_membership(group_id, user_id) is not None

    async def resolve_scope(self, user_id: str, group_id: str) -> Scope:
        """Resolve a user's school, roles and membership for a group.

        A superadmin reaches groups of every school; the scope then carries
        the group's school. Everyone else only sees groups of their own.

        Args:
            user_id: Profile id of the caller.
            group_id: Group being accessed.

        Returns:
            The resolved Scope.

        Raises:
            ProfileNotFoundError: If the profile does not exist.
            GroupNotFoundError: If the group is absent or in another school.
            UnavailableError: If any lookup fails or times out.
        """
        profile = await self.get_profile(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)

        roles = await self.get_roles(user_id)
        if self.is_superadmin(roles):
            group = await self._get_group_any_school(group_id)
        else:
            group = await self.get_group(group_id, profile.school_id)

        return Scope(
            school_id=group.school_id,
            is_member=await self.is_member(group_id, user_id),
            roles=roles,
        )

    async def _get_group_any_school(self, group_id: str) -> Group:
        stmt = select(Group).where(Group.id == group_id)
        result = await bounded(self._db.execute(stmt), self._timeout, "group lookup")
        group = result.scalar_one_or_none()
        if group is None:
            raise GroupNotFoundError(group_id)
        return group

    @staticmethod
    def is_superadmin(roles: frozenset[str]) -> bool:
        return RoleTag.SUPERADMIN.value in roles

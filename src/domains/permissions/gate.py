# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Message permission gate.

Decides whether a user may post into a group. Rules are evaluated in a
fixed order and the first decisive one wins:

1. superadmin: allow.
2. admin: allow for any group in the admin's own school, member or not.
3. group missing (or in another school): deny.
4. ordinary group: allow. Membership is enforced by the read/write paths.
5. announcement group: allow only with a grant whose can_send_messages
   is true.

The gate is fail-closed. Any lookup error or timeout is logged and turns
into a deny; nothing is raised to the caller. It has no side effects.

Example:
    >>> gate = MessagePermissionGate(db)
    >>> await gate.can_send(group_id, user_id)
    False
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.domains.backend import bounded
from src.domains.membership.resolver import DEFAULT_TIMEOUT_SECONDS, MembershipResolver
from src.infrastructure.database.models import GroupMessagePermission
from src.models.common import RoleTag

logger = logging.getLogger(__name__)


class MessagePermissionGate:
    """Authorization check for sending messages.

    Attributes:
        _db: Async database session.
        _resolver: Profile, role and group lookups.
        _timeout: Deadline applied to each lookup.
    """

    def __init__(
        self,
        db: AsyncSession,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        resolver: MembershipResolver | None = None,
    ) -> None:
        self._db = db
        self._timeout = timeout
        self._resolver = resolver or MembershipResolver(db, timeout=timeout)

    async def can_send(self, group_id: str, user_id: str) -> bool:
        """Evaluate whether user_id may post into group_id.

        Args:
            group_id: Target group.
            user_id: Profile id of the would-be sender.

        Returns:
            True if the send is allowed. False on denial or on any failure.
        """
        try:
            return await self._evaluate(group_id, user_id)
        except Exception as e:
            logger.warning(
                "Permission check failed closed for user %s in group %s: %s",
                user_id,
                group_id,
                e,
            )
            return False

    async def _evaluate(self, group_id: str, user_id: str) -> bool:
        profile = await self._resolver.get_profile(user_id)
        if profile is None:
            return False

        roles = await self._resolver.get_roles(user_id)
        if RoleTag.SUPERADMIN.value in roles:
            return True

        group = await self._resolver.find_group(group_id, profile.school_id)

        if RoleTag.ADMIN.value in roles:
            return group is not None

        if group is None:
            return False

        if not group.is_announcement:
            return True

        return await self._has_grant(group_id, user_id)

    async def _has_grant(self, group_id: str, user_id: str) -> bool:
        stmt = select(GroupMessagePermission.can_send_messages).where(
            GroupMessagePermission.group_id == group_id,
            GroupMessagePermission.user_id == user_id,
        )
        result = await bounded(self._db.execute(stmt), self._timeout, "grant lookup")
        return bool(result.scalar_one_or_none())

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Group management API endpoints.

This module provides endpoints for group lifecycle and rosters:
- GET / - List the caller's school groups (non-admins: public or joined)
- POST / - Create a group (admin)
- GET /{group_id} - Get group details
- DELETE /{group_id} - Delete a group with its members and messages (admin)

Membership endpoints:
- GET /{group_id}/members - List members (admins and members)
- POST /{group_id}/members - Add a member (admin), or join a public group
- DELETE /{group_id}/members/{membership_id} - Remove a member (admin)
- POST /{group_id}/leave - Leave a group

Permission endpoints:
- PUT /{group_id}/permissions/{user_id} - Set a send grant (admin)

Every endpoint works inside the caller's school only.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_messaging_settings, require_admin, require_auth
from src.api.errors import to_http_exception
from src.api.middleware.auth import CurrentUser
from src.core.config import MessagingSettings
from src.core.errors import ChatServiceError, ForbiddenError
from src.domains.groups import GroupService
from src.models.common import DeleteResponse
from src.models.group import (
    AddMemberRequest,
    GroupCreateRequest,
    GroupListResponse,
    GroupResponse,
    MemberListResponse,
    MemberResponse,
    MessagePermissionRequest,
    MessagePermissionResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_service(db: AsyncSession, settings: MessagingSettings) -> GroupService:
    return GroupService(db=db, timeout=settings.backend_timeout_seconds)


def _viewer_id(user: CurrentUser) -> str | None:
    """Admins see every group of their school; others see public and joined groups."""
    return None if user.is_admin else user.id


@router.get(
    "",
    response_model=GroupListResponse,
    summary="List groups",
    description=(
        "List groups in the caller's school, newest first, with member counts. "
        "Non-admins see public groups and the groups they belong to."
    ),
)
async def list_groups(
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> GroupListResponse:
    service = _get_service(db, settings)
    try:
        groups = await service.list_groups(current_user.school_id, _viewer_id(current_user))
    except ChatServiceError as e:
        raise to_http_exception(e)
    return GroupListResponse(items=groups, total=len(groups))


@router.post(
    "",
    response_model=GroupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create group",
    description="Create a group. The creator becomes its first member. Requires admin access.",
)
async def create_group(
    data: GroupCreateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> GroupResponse:
    """Create a new group.

    Args:
        data: Group creation request.
        current_user: Authenticated admin.
        db: Database session.
        settings: Messaging settings.

    Returns:
        Created group response.

    Raises:
        HTTPException: 404 if a member id is unknown, 503 on backend failure.
    """
    logger.info(
        "Creating group %r in school %s by %s",
        data.name,
        current_user.school_id,
        current_user.id,
    )

    service = _get_service(db, settings)
    try:
        return await service.create_group(current_user.school_id, current_user.id, data)
    except ChatServiceError as e:
        raise to_http_exception(e)


@router.get(
    "/{group_id}",
    response_model=GroupResponse,
    summary="Get group",
)
async def get_group(
    group_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> GroupResponse:
    service = _get_service(db, settings)
    try:
        return await service.get_group(
            group_id, current_user.school_id, _viewer_id(current_user)
        )
    except ChatServiceError as e:
        raise to_http_exception(e)


@router.delete(
    "/{group_id}",
    response_model=DeleteResponse,
    summary="Delete group",
    description="Delete a group together with its memberships and messages. Requires admin access.",
)
async def delete_group(
    group_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> DeleteResponse:
    logger.info("Deleting group %s by %s", group_id, current_user.id)

    service = _get_service(db, settings)
    try:
        await service.delete_group(group_id, current_user.school_id)
    except ChatServiceError as e:
        raise to_http_exception(e)
    return DeleteResponse(id=group_id)


@router.get(
    "/{group_id}/members",
    response_model=MemberListResponse,
    summary="List members",
)
async def list_members(
    group_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> MemberListResponse:
    service = _get_service(db, settings)
    try:
        members = await service.list_members(
            group_id, current_user.school_id, _viewer_id(current_user)
        )
    except ChatServiceError as e:
        raise to_http_exception(e)
    return MemberListResponse(items=members, total=len(members))


@router.post(
    "/{group_id}/members",
    response_model=MemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add member",
    description=(
        "Admins may add any profile of their school. Other users may only "
        "add themselves, and only to public groups."
    ),
)
async def add_member(
    group_id: str,
    data: AddMemberRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> MemberResponse:
    """Add a member to a group.

    Raises:
        HTTPException: 403 when a non-admin adds someone else or joins a
            private group, 409 if already a member.
    """
    user_id = data.user_id or current_user.id
    service = _get_service(db, settings)

    try:
        if current_user.is_admin:
            return await service.add_member(group_id, current_user.school_id, user_id)
        if user_id != current_user.id:
            raise ForbiddenError("Only admins can add other users to a group.")
        return await service.join_group(group_id, current_user.school_id, user_id)
    except ChatServiceError as e:
        raise to_http_exception(e)


@router.delete(
    "/{group_id}/members/{membership_id}",
    response_model=DeleteResponse,
    summary="Remove member",
)
async def remove_member(
    group_id: str,
    membership_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> DeleteResponse:
    service = _get_service(db, settings)
    try:
        await service.remove_member(group_id, current_user.school_id, membership_id)
    except ChatServiceError as e:
        raise to_http_exception(e)
    return DeleteResponse(id=membership_id)


@router.post(
    "/{group_id}/leave",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Leave group",
)
async def leave_group(
    group_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> None:
    service = _get_service(db, settings)
    try:
        await service.leave_group(group_id, current_user.school_id, current_user.id)
    except ChatServiceError as e:
        raise to_http_exception(e)


@router.put(
    "/{group_id}/permissions/{user_id}",
    response_model=MessagePermissionResponse,
    summary="Set send permission",
    description="Allow or disallow a user to post in an announcement group. Requires admin access.",
)
async def set_message_permission(
    group_id: str,
    user_id: str,
    data: MessagePermissionRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> MessagePermissionResponse:
    service = _get_service(db, settings)
    try:
        return await service.set_message_permission(
            group_id,
            current_user.school_id,
            user_id,
            data.can_send_messages,
        )
    except ChatServiceError as e:
        raise to_http_exception(e)

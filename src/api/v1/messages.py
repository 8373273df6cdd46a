# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Message API endpoints.

This module provides endpoints for a group's conversation:
- GET /groups/{group_id}/can-send - Evaluate the send permission for the caller
- GET /groups/{group_id}/messages - Page through history (members only)
- POST /groups/{group_id}/messages - Send a message
- POST /groups/{group_id}/read - Mark the group read
- GET /groups/{group_id}/reads - Read receipts for the group
- GET /chats - The caller's conversation list
"""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_messaging_settings, require_auth
from src.api.errors import to_http_exception
from src.api.middleware.auth import CurrentUser
from src.api.middleware.rate_limit import RATE_LIMIT_SEND, limiter
from src.core.config import MessagingSettings
from src.core.errors import ChatServiceError
from src.domains.chat import ChatService
from src.models.group import CanSendResponse
from src.models.message import (
    ChatListResponse,
    MessagePage,
    MessageResponse,
    ReadStatus,
    ReadStatusListResponse,
    SendMessageRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_service(db: AsyncSession, settings: MessagingSettings) -> ChatService:
    return ChatService(db=db, settings=settings)


@router.get(
    "/groups/{group_id}/can-send",
    response_model=CanSendResponse,
    summary="Check send permission",
)
async def can_send(
    group_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> CanSendResponse:
    service = _get_service(db, settings)
    allowed = await service.can_send(group_id, current_user.id)
    return CanSendResponse(group_id=group_id, can_send=allowed)


@router.get(
    "/groups/{group_id}/messages",
    response_model=MessagePage,
    summary="List messages",
    description=(
        "Return one page of history, oldest first. Omit `before` for the newest "
        "page; pass the oldest message's created_at (and id) to load older ones. "
        "A page shorter than `limit` means there is nothing older."
    ),
)
async def list_messages(
    group_id: str,
    before: Annotated[datetime | None, Query(description="Only messages older than this")] = None,
    before_id: Annotated[str | None, Query(description="Id of the message at `before`")] = None,
    limit: Annotated[int | None, Query(ge=1, le=200, description="Page size")] = None,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> MessagePage:
    service = _get_service(db, settings)
    try:
        return await service.fetch_history(
            group_id,
            current_user.id,
            before=before,
            before_id=before_id,
            limit=limit,
        )
    except ChatServiceError as e:
        raise to_http_exception(e)


@router.post(
    "/groups/{group_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send message",
)
@limiter.limit(RATE_LIMIT_SEND)
async def send_message(
    request: Request,
    group_id: str,
    data: SendMessageRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> MessageResponse:
    """Send a message to a group.

    Raises:
        HTTPException: 403 with a dedicated detail when the group is
            announcement-only, 422 for blank content, 503 on backend failure.
    """
    service = _get_service(db, settings)
    try:
        return await service.send_message(group_id, current_user.id, data)
    except ChatServiceError as e:
        raise to_http_exception(e)


@router.post(
    "/groups/{group_id}/read",
    response_model=ReadStatus,
    summary="Mark group read",
)
async def mark_read(
    group_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> ReadStatus:
    service = _get_service(db, settings)
    try:
        return await service.mark_read(group_id, current_user.id)
    except ChatServiceError as e:
        raise to_http_exception(e)


@router.get(
    "/groups/{group_id}/reads",
    response_model=ReadStatusListResponse,
    summary="Read receipts",
)
async def read_statuses(
    group_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> ReadStatusListResponse:
    service = _get_service(db, settings)
    try:
        items = await service.read_statuses(group_id, current_user.id)
    except ChatServiceError as e:
        raise to_http_exception(e)
    return ReadStatusListResponse(group_id=group_id, items=items)


@router.get(
    "/chats",
    response_model=ChatListResponse,
    summary="Conversation list",
    description="Groups the caller belongs to, with last message and unread count.",
)
async def list_chats(
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
) -> ChatListResponse:
    service = _get_service(db, settings)
    try:
        items = await service.list_chats(current_user.id, current_user.school_id)
    except ChatServiceError as e:
        raise to_http_exception(e)
    return ChatListResponse(items=items)

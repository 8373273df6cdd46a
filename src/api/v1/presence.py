# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Typing presence endpoints.

This module provides:
- POST /groups/{group_id}/typing - Start, renew or stop typing
- GET /groups/{group_id}/typing - Who is typing right now
- WebSocket /groups/{group_id}/typing/stream - Live typing events

Clients call POST with is_typing=true on every keystroke; the indicator
clears on its own after the quiet window.

WebSocket Protocol:
    Client connects with ?token=<jwt> or sends {"type": "auth", "token": "..."}
    Server sends {"type": "connected", "group_id": ..., "typing_user_ids": [...]}
    Server sends {"type": "typing", "user_id": ..., "is_typing": ...} per change
    Client may send {"type": "typing", "is_typing": bool} or {"type": "ping"}

Example (JavaScript):
    const ws = new WebSocket(
        `wss://api.example.com/api/v1/groups/${groupId}/typing/stream?token=${jwt}`
    );
    ws.onmessage = (event) => updateTypingSet(JSON.parse(event.data));
"""

import asyncio
import logging

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Request,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db, get_messaging_settings, get_typing_tracker, require_auth
from src.api.errors import to_http_exception
from src.api.middleware.auth import CurrentUser
from src.api.middleware.rate_limit import RATE_LIMIT_TYPING, limiter
from src.core.config import MessagingSettings, get_settings
from src.core.errors import ChatServiceError, NotMemberError
from src.domains.auth.jwt import InvalidTokenError, JWTManager, TokenExpiredError
from src.domains.membership import MembershipResolver, Scope
from src.domains.presence import TypingTracker
from src.infrastructure.database import get_session
from src.models.presence import TypingRequest, TypingStateResponse
from src.utils.datetime import format_iso, utc_now

logger = logging.getLogger(__name__)

router = APIRouter()

AUTH_TIMEOUT_SECONDS = 30.0


async def _require_member(
    db: AsyncSession,
    settings: MessagingSettings,
    group_id: str,
    user_id: str,
) -> Scope:
    resolver = MembershipResolver(db, timeout=settings.backend_timeout_seconds)
    scope = await resolver.resolve_scope(user_id, group_id)
    if not scope.is_member:
        raise NotMemberError(group_id, user_id)
    return scope


@router.post(
    "/groups/{group_id}/typing",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Set typing state",
)
@limiter.limit(RATE_LIMIT_TYPING)
async def set_typing(
    request: Request,
    group_id: str,
    data: TypingRequest,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
    tracker: TypingTracker = Depends(get_typing_tracker),
) -> None:
    try:
        scope = await _require_member(db, settings, group_id, current_user.id)
        await tracker.set_typing(scope.school_id, group_id, current_user.id, data.is_typing)
    except ChatServiceError as e:
        raise to_http_exception(e)


@router.get(
    "/groups/{group_id}/typing",
    response_model=TypingStateResponse,
    summary="Get typing users",
)
async def get_typing(
    group_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
    settings: MessagingSettings = Depends(get_messaging_settings),
    tracker: TypingTracker = Depends(get_typing_tracker),
) -> TypingStateResponse:
    try:
        scope = await _require_member(db, settings, group_id, current_user.id)
        user_ids = await tracker.typing_users(scope.school_id, group_id)
    except ChatServiceError as e:
        raise to_http_exception(e)
    return TypingStateResponse(group_id=group_id, typing_user_ids=user_ids)


def _authenticate_websocket(token: str | None) -> CurrentUser | None:
    """Authenticate a WebSocket connection using a JWT token."""
    if not token:
        return None

    try:
        payload = JWTManager(get_settings().jwt).decode_token(token, expected_type="access")
        return CurrentUser(payload)
    except (TokenExpiredError, InvalidTokenError) as e:
        logger.debug("WebSocket auth failed: %s", str(e))
        return None


async def _send_error(websocket: WebSocket, code: str, message: str) -> None:
    await websocket.send_json({"type": "error", "code": code, "message": message})
    await websocket.close()


@router.websocket("/groups/{group_id}/typing/stream")
async def typing_stream_websocket(websocket: WebSocket, group_id: str) -> None:
    """Stream typing changes for one group until the client disconnects.

    Authenticates via JWT token (query param or first message) and requires
    membership in the group. The caller's own events are not echoed back.
    """
    await websocket.accept()

    try:
        tracker = get_typing_tracker()
    except HTTPException:
        await _send_error(websocket, "UNAVAILABLE", "Typing presence is not available")
        return

    user = _authenticate_websocket(websocket.query_params.get("token"))
    if not user:
        await websocket.send_json({
            "type": "auth_required",
            "message": "Send auth message with token: {\"type\": \"auth\", \"token\": \"...\"}",
        })
        try:
            auth_data = await asyncio.wait_for(websocket.receive_json(), AUTH_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            await _send_error(websocket, "AUTH_TIMEOUT", "Authentication timeout")
            return
        if auth_data.get("type") == "auth":
            user = _authenticate_websocket(auth_data.get("token"))

    if not user:
        await _send_error(websocket, "AUTH_FAILED", "Invalid or expired token")
        return

    settings = get_settings().messaging
    try:
        async with get_session() as db:
            scope = await _require_member(db, settings, group_id, user.id)
        typing_now = await tracker.typing_users(scope.school_id, group_id)
    except ChatServiceError as e:
        await _send_error(websocket, "UNAUTHORIZED", str(e))
        return

    await websocket.send_json({
        "type": "connected",
        "group_id": group_id,
        "typing_user_ids": [uid for uid in typing_now if uid != user.id],
    })

    sender_task = asyncio.create_task(
        _event_sender(websocket, tracker, scope.school_id, group_id, user.id)
    )

    try:
        while True:
            data = await websocket.receive_json()
            msg_type = data.get("type")

            if msg_type == "typing":
                await tracker.set_typing(
                    scope.school_id, group_id, user.id, bool(data.get("is_typing"))
                )
            elif msg_type == "ping":
                await websocket.send_json({
                    "type": "pong",
                    "timestamp": format_iso(utc_now()),
                })
            else:
                await websocket.send_json({
                    "type": "error",
                    "code": "UNKNOWN_MESSAGE_TYPE",
                    "message": f"Unknown message type: {msg_type}",
                })
    except WebSocketDisconnect:
        logger.debug("Typing stream disconnected: group=%s user=%s", group_id, user.id)
    except ChatServiceError as e:
        logger.warning("Typing stream closed for group %s: %s", group_id, e)
        await _send_error(websocket, "UNAVAILABLE", "Typing presence is not available")
    finally:
        sender_task.cancel()
        await asyncio.gather(sender_task, return_exceptions=True)


async def _event_sender(
    websocket: WebSocket,
    tracker: TypingTracker,
    school_id: str,
    group_id: str,
    user_id: str,
) -> None:
    """Forward typing events from the tracker to the socket."""
    stream = tracker.on_typing_change(school_id, group_id, exclude_user_id=user_id)
    try:
        async for event in stream:
            await websocket.send_json({
                "type": "typing",
                "user_id": event.user_id,
                "is_typing": event.is_typing,
                "updated_at": format_iso(event.updated_at),
            })
    finally:
        await stream.aclose()

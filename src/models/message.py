# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Message, read-receipt and conversation list schemas."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from src.models.common import ProfileSummary
from src.utils.datetime import ensure_utc


class SendMessageRequest(BaseModel):
    """Message to post.

    Content may be empty when an attachment is present; the stored content
    then becomes "Sent an attachment".
    """

    content: str = ""
    attachment_url: str | None = Field(default=None, max_length=1000)
    attachment_type: str | None = Field(default=None, max_length=100)
    attachment_name: str | None = Field(default=None, max_length=255)


class MessageResponse(BaseModel):
    """A persisted message with its author denormalized for rendering."""

    id: str
    group_id: str
    school_id: str
    user_id: str | None
    content: str
    attachment_url: str | None = None
    attachment_type: str | None = None
    attachment_name: str | None = None
    created_at: datetime
    author: ProfileSummary | None = None

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class MessagePage(BaseModel):
    """One page of history, oldest first.

    has_more is False when the page is shorter than the requested limit.
    """

    messages: list[MessageResponse]
    limit: int
    has_more: bool


class ReadStatus(BaseModel):
    user_id: str
    last_read_at: datetime


class ReadStatusListResponse(BaseModel):
    group_id: str
    items: list[ReadStatus]


class ChatSummary(BaseModel):
    """One row of the caller's conversation list."""

    group_id: str
    name: str
    is_announcement: bool
    last_message: str
    last_activity_at: datetime
    unread_count: int


class ChatListResponse(BaseModel):
    items: list[ChatSummary]

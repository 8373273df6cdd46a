# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Group, membership and send-permission schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.models.common import ProfileSummary


class GroupCreateRequest(BaseModel):
    """Request to create a group.

    The creator is always added as the first member; member_ids are added
    after the creator, skipping duplicates.
    """

    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    is_public: bool = False
    is_announcement: bool = False
    member_ids: list[str] = Field(default_factory=list)


class GroupResponse(BaseModel):
    """Group as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    school_id: str
    name: str
    description: str | None = None
    is_public: bool
    is_announcement: bool
    created_by: str | None = None
    created_at: datetime
    member_count: int | None = None


class GroupListResponse(BaseModel):
    items: list[GroupResponse]
    total: int


class AddMemberRequest(BaseModel):
    """Add a user to a group. Omit user_id to join a public group yourself."""

    user_id: str | None = None


class MemberResponse(BaseModel):
    """Membership with the member's profile, role tags and send flag."""

    id: str
    group_id: str
    user_id: str
    joined_at: datetime
    profile: ProfileSummary | None = None
    roles: list[str] = Field(default_factory=list)
    can_send_messages: bool = False


class MemberListResponse(BaseModel):
    items: list[MemberResponse]
    total: int


class MessagePermissionRequest(BaseModel):
    can_send_messages: bool


class MessagePermissionResponse(BaseModel):
    group_id: str
    user_id: str
    can_send_messages: bool


class CanSendResponse(BaseModel):
    group_id: str
    can_send: bool

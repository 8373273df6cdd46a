# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Typing indicator schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from src.utils.datetime import utc_now


class TypingRequest(BaseModel):
    is_typing: bool


class TypingEvent(BaseModel):
    """Typing state change for one user in one group."""

    group_id: str
    user_id: str
    is_typing: bool
    updated_at: datetime = Field(default_factory=utc_now)


class TypingStateResponse(BaseModel):
    group_id: str
    typing_user_ids: list[str]

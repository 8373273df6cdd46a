# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

Modules:
    groups: Group lifecycle, rosters and send grants.
    messages: History, sending, read receipts and the conversation list.
    presence: Typing indicators and the typing event stream.
    devices: Push token registration.
"""

from fastapi import APIRouter

from src.api.v1 import devices, groups, messages, presence

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

router.include_router(groups.router, prefix="/groups", tags=["Groups"])
router.include_router(messages.router, tags=["Messages"])
router.include_router(presence.router, tags=["Presence"])
router.include_router(devices.router, prefix="/devices", tags=["Devices"])

__all__ = ["router"]

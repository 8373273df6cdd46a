# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models for the chat schema.

Importing this package registers every table on Base.metadata, which is
what Alembic autogenerate and the test fixtures rely on.
"""

from src.infrastructure.database.models.base import Base, new_id
from src.infrastructure.database.models.group import (
    Group,
    GroupMember,
    GroupMessagePermission,
    GroupRead,
)
from src.infrastructure.database.models.message import DeviceToken, Message
from src.infrastructure.database.models.school import Profile, School, UserRole

__all__ = [
    "Base",
    "new_id",
    "School",
    "Profile",
    "UserRole",
    "Group",
    "GroupMember",
    "GroupMessagePermission",
    "GroupRead",
    "Message",
    "DeviceToken",
]

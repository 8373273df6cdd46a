# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Message log and device token tables."""

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.infrastructure.database.models.base import (
    Base,
    CreatedAtMixin,
    UUIDPrimaryKeyMixin,
)
from src.infrastructure.database.models.school import Profile


class Message(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """Immutable entry in a group's log, ordered by (created_at, id)."""

    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_group_created", "group_id", "created_at", "id"),)

    group_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
    )
    school_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("schools.id"), nullable=False
    )
    user_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("profiles.id", ondelete="SET NULL")
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    attachment_url: Mapped[str | None] = mapped_column(String(1000))
    attachment_type: Mapped[str | None] = mapped_column(String(100))
    attachment_name: Mapped[str | None] = mapped_column(String(255))

    author: Mapped[Profile | None] = relationship()


class DeviceToken(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """Push token registered by one of a user's devices."""

    __tablename__ = "device_tokens"

    user_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    platform: Mapped[str | None] = mapped_column(String(20))

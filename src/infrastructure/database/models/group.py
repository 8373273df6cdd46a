# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Group, membership, send-permission grant and read-marker tables."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.infrastructure.database.models.base import (
    Base,
    CreatedAtMixin,
    UUIDPrimaryKeyMixin,
)
from src.infrastructure.database.models.school import Profile
from src.utils.datetime import utc_now


class Group(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """A conversation scope inside one school.

    Announcement groups only accept messages from admins and from members
    holding a grant with can_send_messages set.
    """

    __tablename__ = "groups"

    school_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("schools.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_announcement: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("profiles.id", ondelete="SET NULL")
    )


class GroupMember(UUIDPrimaryKeyMixin, Base):
    """Membership row; required to read a group's messages."""

    __tablename__ = "group_members"
    __table_args__ = (UniqueConstraint("group_id", "user_id"),)

    group_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    profile: Mapped[Profile] = relationship()


class GroupMessagePermission(UUIDPrimaryKeyMixin, Base):
    """Per-user override letting a non-admin post in an announcement group.

    A missing row is equivalent to can_send_messages = False.
    """

    __tablename__ = "group_message_permissions"
    __table_args__ = (UniqueConstraint("group_id", "user_id"),)

    group_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    can_send_messages: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )


class GroupRead(UUIDPrimaryKeyMixin, Base):
    """Last time a user read a group; drives unread counts and receipts."""

    __tablename__ = "group_reads"
    __table_args__ = (UniqueConstraint("group_id", "user_id"),)

    group_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    last_read_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

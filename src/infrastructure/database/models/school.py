# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""School, profile and role assignment tables.

A principal active in several schools has one profile per school. Role
tags live in user_roles and are checked by existence, so a profile may
be a parent and a teacher at the same time.
"""

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.infrastructure.database.models.base import (
    Base,
    CreatedAtMixin,
    UUIDPrimaryKeyMixin,
)


class School(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """Tenant boundary for every other row."""

    __tablename__ = "schools"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    theme_color: Mapped[str | None] = mapped_column(String(20))
    logo_url: Mapped[str | None] = mapped_column(String(500))


class Profile(UUIDPrimaryKeyMixin, CreatedAtMixin, Base):
    """A user's identity within one school."""

    __tablename__ = "profiles"

    auth_subject: Mapped[str | None] = mapped_column(String(255), index=True)
    school_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("schools.id"), nullable=False, index=True
    )
    full_name: Mapped[str | None] = mapped_column(String(200))
    email: Mapped[str | None] = mapped_column(String(255))

    roles: Mapped[list["UserRole"]] = relationship(
        back_populates="profile", cascade="all, delete-orphan"
    )

    @property
    def role_tags(self) -> set[str]:
        return {role.role for role in self.roles}


class UserRole(UUIDPrimaryKeyMixin, Base):
    """Role tag held by a profile: parent, teacher, admin or superadmin."""

    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role"),)

    user_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)

    profile: Mapped[Profile] = relationship(back_populates="roles")

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial chat schema.

Revision ID: 001_chat_initial
Revises: None
Create Date: 2025-06-02

Creates schools, profiles and roles, groups with their memberships,
send grants and read markers, the message log and device tokens.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_chat_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=False),
        server_default=sa.text("gen_random_uuid()"),
        primary_key=True,
    )


def _uuid_fk(name: str, target: str, nullable: bool = False, ondelete: str | None = None) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def upgrade() -> None:
    """Create chat tables."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.create_table(
        "schools",
        _uuid_pk(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("theme_color", sa.String(20), nullable=True),
        sa.Column("logo_url", sa.String(500), nullable=True),
        _timestamp("created_at"),
    )

    op.create_table(
        "profiles",
        _uuid_pk(),
        sa.Column("auth_subject", sa.String(255), nullable=True),
        _uuid_fk("school_id", "schools.id"),
        sa.Column("full_name", sa.String(200), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_profiles_auth_subject", "profiles", ["auth_subject"])
    op.create_index("ix_profiles_school_id", "profiles", ["school_id"])

    op.create_table(
        "user_roles",
        _uuid_pk(),
        _uuid_fk("user_id", "profiles.id", ondelete="CASCADE"),
        sa.Column("role", sa.String(20), nullable=False),
        sa.UniqueConstraint("user_id", "role", name="uq_user_roles_user_id_role"),
        sa.CheckConstraint(
            "role IN ('parent', 'teacher', 'admin', 'superadmin')",
            name="ck_user_roles_valid_role",
        ),
    )
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])

    op.create_table(
        "groups",
        _uuid_pk(),
        _uuid_fk("school_id", "schools.id"),
        sa.Column("name", sa.String(200), nullable=False, server_default=""),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_public", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_announcement", sa.Boolean, nullable=False, server_default=sa.false()),
        _uuid_fk("created_by", "profiles.id", nullable=True, ondelete="SET NULL"),
        _timestamp("created_at"),
    )
    op.create_index("ix_groups_school_id", "groups", ["school_id"])

    op.create_table(
        "group_members",
        _uuid_pk(),
        _uuid_fk("group_id", "groups.id", ondelete="CASCADE"),
        _uuid_fk("user_id", "profiles.id", ondelete="CASCADE"),
        _timestamp("joined_at"),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_members_group_id"),
    )
    op.create_index("ix_group_members_group_id", "group_members", ["group_id"])
    op.create_index("ix_group_members_user_id", "group_members", ["user_id"])

    op.create_table(
        "group_message_permissions",
        _uuid_pk(),
        _uuid_fk("group_id", "groups.id", ondelete="CASCADE"),
        _uuid_fk("user_id", "profiles.id", ondelete="CASCADE"),
        sa.Column("can_send_messages", sa.Boolean, nullable=False, server_default=sa.false()),
        _timestamp("updated_at"),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_message_permissions_group_id"),
    )

    op.create_table(
        "messages",
        _uuid_pk(),
        _uuid_fk("group_id", "groups.id", ondelete="CASCADE"),
        _uuid_fk("school_id", "schools.id"),
        _uuid_fk("user_id", "profiles.id", nullable=True, ondelete="SET NULL"),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("attachment_url", sa.String(1000), nullable=True),
        sa.Column("attachment_type", sa.String(100), nullable=True),
        sa.Column("attachment_name", sa.String(255), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_messages_group_created", "messages", ["group_id", "created_at", "id"])

    op.create_table(
        "group_reads",
        _uuid_pk(),
        _uuid_fk("group_id", "groups.id", ondelete="CASCADE"),
        _uuid_fk("user_id", "profiles.id", ondelete="CASCADE"),
        _timestamp("last_read_at"),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_reads_group_id"),
    )

    op.create_table(
        "device_tokens",
        _uuid_pk(),
        _uuid_fk("user_id", "profiles.id", ondelete="CASCADE"),
        sa.Column("token", sa.String(512), nullable=False),
        sa.Column("platform", sa.String(20), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("token", name="uq_device_tokens_token"),
    )
    op.create_index("ix_device_tokens_user_id", "device_tokens", ["user_id"])


def downgrade() -> None:
    """Drop chat tables in reverse dependency order."""
    op.drop_table("device_tokens")
    op.drop_table("group_reads")
    op.drop_table("messages")
    op.drop_table("group_message_permissions")
    op.drop_table("group_members")
    op.drop_table("groups")
    op.drop_table("user_roles")
    op.drop_table("profiles")
    op.drop_table("schools")

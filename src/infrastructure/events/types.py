# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Event topic constants.

Subscribers use these instead of string literals so a renamed topic is a
single edit.
"""


class EventTypes:
    """All event topics, grouped by what changed."""

    class Group:
        """Group list and roster changes."""

        CREATED = "group.created"
        DELETED = "group.deleted"
        MEMBERS_CHANGED = "group.members.changed"
        PERMISSIONS_CHANGED = "group.permissions.changed"

    class Message:
        """Message log changes."""

        CREATED = "message.created"

    class Chat:
        """Per-user conversation list changes."""

        READ = "chat.read"


class EventPatterns:
    """Wildcard patterns for subscribing to several topics at once."""

    ALL_GROUP = "group.*"
    ALL_MESSAGE = "message.*"
    ALL_CHAT = "chat.*"
    ALL = "*"

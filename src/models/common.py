# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Shared schemas.

Joined profile data can reach the API as an ORM object, a mapping, a
one-element list of either, or nothing at all, depending on how the row
was loaded. ProfileSummary.from_join() collapses all of these into one
shape before they enter any response model.
"""

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class RoleTag(str, Enum):
    """Role tags a profile may hold."""

    PARENT = "parent"
    TEACHER = "teacher"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


ADMIN_ROLES = frozenset({RoleTag.ADMIN.value, RoleTag.SUPERADMIN.value})


class ProfileSummary(BaseModel):
    """Author or member identity embedded in other responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str | None = None
    email: str | None = None

    @classmethod
    def from_join(cls, value: Any) -> "ProfileSummary | None":
        """Normalize a joined profile into a single object.

        Args:
            value: ORM Profile, mapping, one-element sequence or None.

        Returns:
            ProfileSummary, or None when there is no profile.
        """
        if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
            value = value[0] if value else None
        if value is None:
            return None
        if isinstance(value, Mapping):
            return cls.model_validate(dict(value))
        return cls.model_validate(value)


class DeleteResponse(BaseModel):
    """Acknowledgement for delete operations."""

    id: str
    deleted: bool = True

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exception hierarchy for the chat service.

Every error raised by a domain service derives from ChatServiceError.
The five intermediate classes are what the API layer maps onto HTTP
status codes; the leaf classes exist so callers and tests can be
specific about what went wrong.

Example:
    >>> try:
    ...     await resolver.resolve_scope(user_id, group_id)
    ... except NotFoundError:
    ...     raise HTTPException(status_code=404)
"""


class ChatServiceError(Exception):
    """Base exception for chat service errors."""

    pass


class NotFoundError(ChatServiceError):
    """Entity absent, or present in a different school."""

    pass


class ForbiddenError(ChatServiceError):
    """Caller is not allowed to perform the operation."""

    pass


class ConflictError(ChatServiceError):
    """Operation would create a duplicate row."""

    pass


class UnavailableError(ChatServiceError):
    """A backend call failed or timed out."""

    pass


class InvalidError(ChatServiceError):
    """Input rejected before any backend call was made."""

    pass


class GroupNotFoundError(NotFoundError):
    """Raised when a group does not exist in the caller's school.

    The same error is used for a group that exists in another school so
    that group ids cannot be probed across tenants.
    """

    def __init__(self, group_id: str) -> None:
        self.group_id = group_id
        super().__init__(f"Group not found: {group_id}")


class ProfileNotFoundError(NotFoundError):
    """Raised when a profile does not exist in the caller's school."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"Profile not found: {user_id}")


class MembershipNotFoundError(NotFoundError):
    """Raised when a membership row cannot be found."""

    pass


class AlreadyMemberError(ConflictError):
    """Raised when adding a user who is already a member of the group."""

    def __init__(self, group_id: str, user_id: str) -> None:
        self.group_id = group_id
        self.user_id = user_id
        super().__init__(f"User {user_id} is already a member of group {group_id}")


class SendNotPermittedError(ForbiddenError):
    """Raised when the permission gate denies a send."""

    def __init__(self, group_id: str, user_id: str) -> None:
        self.group_id = group_id
        self.user_id = user_id
        super().__init__(
            "You do not have permission to send messages in this announcement group."
        )


class NotMemberError(ForbiddenError):
    """Raised when a non-member tries to read or write a group's messages."""

    def __init__(self, group_id: str, user_id: str) -> None:
        self.group_id = group_id
        self.user_id = user_id
        super().__init__("You must be a member of this group to access its messages.")


class InvalidMessageError(InvalidError):
    """Raised when message content is empty after trimming."""

    pass

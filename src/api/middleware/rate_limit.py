# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Rate limiting using slowapi.

Limits are applied per authenticated user, falling back to the client IP
for anonymous requests. In production the counters live in Redis so
every API worker shares them.

Example:
    @router.post("/groups/{group_id}/typing")
    @limiter.limit(RATE_LIMIT_TYPING)
    async def set_typing(request: Request, ...):
        ...
"""

import logging

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from src.core.config import get_settings

logger = logging.getLogger(__name__)


def get_client_identifier(request: Request) -> str:
    """Get a unique identifier for the client.

    Uses school and user ID if authenticated, otherwise the IP address.

    Args:
        request: HTTP request.

    Returns:
        Client identifier string.
    """
    user = getattr(request.state, "user", None)
    if user:
        return f"school:{user.school_id}:user:{user.id}"
    return f"ip:{get_remote_address(request)}"


def create_limiter() -> Limiter:
    """Build the limiter from current settings.

    Test and development environments count in memory.
    """
    settings = get_settings()
    storage_uri = settings.redis.url if settings.is_production else "memory://"
    return Limiter(
        key_func=get_client_identifier,
        default_limits=[f"{settings.rate_limit.requests_per_minute}/minute"],
        storage_uri=storage_uri,
    )


limiter = create_limiter()


async def rate_limit_exceeded_handler(
    request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Returns a 429 Too Many Requests response with retry information.

    Args:
        request: HTTP request.
        exc: Rate limit exceeded exception.

    Returns:
        JSON response with error details.
    """
    logger.warning(
        "Rate limit exceeded: %s for %s",
        exc.detail,
        get_client_identifier(request),
    )

    return Response(
        content='{"detail": "Too many requests. Please try again later."}',
        status_code=429,
        media_type="application/json",
        headers={
            "Retry-After": str(getattr(exc, "retry_after", 60)),
        },
    )


# Common rate limit configurations
RATE_LIMIT_SEND = "30/minute"
RATE_LIMIT_TYPING = "120/minute"

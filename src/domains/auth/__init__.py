# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication domain.

Access tokens are minted by the school platform; this package only
validates them and exposes their claims.

Exports:
    JWTManager: JWT token creation and validation.
    TokenPayload: Decoded token claims.
    JWTError: Base class for token failures.
    TokenExpiredError: Raised for expired tokens.
    InvalidTokenError: Raised for malformed or mis-signed tokens.
"""

from src.domains.auth.jwt import (
    InvalidTokenError,
    JWTError,
    JWTManager,
    TokenExpiredError,
    TokenPayload,
)

__all__ = [
    "JWTManager",
    "TokenPayload",
    "JWTError",
    "TokenExpiredError",
    "InvalidTokenError",
]

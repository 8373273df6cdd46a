# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dramatiq middleware."""

from src.infrastructure.background.middleware.context import (
    PROPAGATED_KEYS,
    LogContextMiddleware,
)

__all__ = ["LogContextMiddleware", "PROPAGATED_KEYS"]

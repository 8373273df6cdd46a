# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cross-cutting helpers: structured logging and UTC datetimes."""

from src.utils.datetime import ensure_utc, format_iso, utc_now
from src.utils.logging import bind_context, clear_context, setup_logging

__all__ = [
    "setup_logging",
    "bind_context",
    "clear_context",
    "utc_now",
    "ensure_utc",
    "format_iso",
]

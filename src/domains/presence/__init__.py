# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Typing presence."""

from src.domains.presence.tracker import (
    TypingTracker,
    close_typing_tracker,
    get_typing_tracker,
    init_typing_tracker,
)

__all__ = [
    "TypingTracker",
    "close_typing_tracker",
    "get_typing_tracker",
    "init_typing_tracker",
]

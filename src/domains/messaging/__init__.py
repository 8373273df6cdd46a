# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Message log and read tracking."""

from src.domains.messaging.reads import ReadService
from src.domains.messaging.store import MessageStore

__all__ = ["MessageStore", "ReadService"]

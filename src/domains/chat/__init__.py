# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Group conversation send and read paths."""

from src.domains.chat.service import ChatService, prepare_content

__all__ = ["ChatService", "prepare_content"]

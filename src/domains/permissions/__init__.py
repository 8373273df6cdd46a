# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Message permission gate."""

from src.domains.permissions.gate import MessagePermissionGate

__all__ = ["MessagePermissionGate"]

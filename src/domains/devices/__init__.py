# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push device registration."""

from src.domains.devices.service import DeviceService

__all__ = ["DeviceService"]

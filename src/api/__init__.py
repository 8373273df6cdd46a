# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API layer for the SchoolComms chat service.

This module provides the FastAPI application and all HTTP endpoints.

Run with:
    uvicorn src.api:create_app --factory
"""

from src.api.app import create_app

__all__ = ["create_app"]

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core package for SchoolComms.

This package contains the pieces every layer shares:
- config: Application configuration and settings
- errors: Domain error hierarchy
"""

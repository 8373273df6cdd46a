# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Membership and role resolution."""

from src.domains.membership.resolver import MembershipResolver, Scope

__all__ = ["MembershipResolver", "Scope"]

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for SchoolComms.

Each domain module owns one slice of the chat rules and is driven by the
API layer or by background actors.

Domains:
    auth: Access token validation.
    membership: Profile, role and membership lookups scoped to a school.
    permissions: The send permission gate.
    messaging: Message log and read markers.
    chat: Send, history and read orchestration.
    groups: Group lifecycle, rosters and send grants.
    devices: Push token registration.
    presence: Typing indicators.
    fanout: Push delivery after a send.
"""

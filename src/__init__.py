"""SchoolComms Backend.

School-scoped group messaging: groups and rosters, announcement
channels with per-member send grants, paged history, read receipts,
typing presence and push delivery.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"

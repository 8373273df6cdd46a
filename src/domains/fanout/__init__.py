# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push fan-out: enqueue side (trigger) and worker side (delivery).

Import the modules directly; the trigger pulls in the Dramatiq actor,
which in turn imports the delivery service lazily.
"""

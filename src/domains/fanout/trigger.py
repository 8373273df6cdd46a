# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enqueue push fan-out after a message has been stored.

notify() is best-effort. A failure to enqueue is logged and dropped; it
never rolls back the message and never reaches the sender. The job itself
is attempted at most once.
"""

import asyncio
import logging
from typing import Any

from src.infrastructure.background.tasks.notifications import deliver_group_message_push

logger = logging.getLogger(__name__)

DEFAULT_ENQUEUE_TIMEOUT_SECONDS = 5.0


class DeliveryFanoutTrigger:
    """Hands new messages to the notification worker.

    Attributes:
        _actor: Dramatiq actor that performs the delivery.
        _timeout: Deadline for the enqueue round-trip.
    """

    def __init__(
        self,
        actor: Any = None,
        timeout: float = DEFAULT_ENQUEUE_TIMEOUT_SECONDS,
    ) -> None:
        self._actor = actor or deliver_group_message_push
        self._timeout = timeout

    async def notify(
        self,
        group_id: str,
        school_id: str,
        sender_id: str,
        content: str,
    ) -> None:
        """Enqueue one delivery job for a stored message.

        Args:
            group_id: Group the message was posted in.
            school_id: School of the group.
            sender_id: Author of the message, excluded from delivery.
            content: Message text for the notification body.
        """
        try:
            # Broker send is blocking network I/O
            await asyncio.wait_for(
                asyncio.to_thread(self._actor.send, group_id, school_id, sender_id, content),
                self._timeout,
            )
            logger.debug("Push fan-out enqueued for group %s", group_id)
        except Exception as e:
            logger.error("Failed to enqueue push fan-out for group %s: %s", group_id, e)

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification background tasks.

Push delivery for new group messages. Delivery is attempted once; a
failed job is reported in its summary and not retried.
"""

import logging
from typing import Any

import dramatiq

from src.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from src.infrastructure.background.tasks.base import run_async

# Setup broker before defining actors
setup_dramatiq()

logger = logging.getLogger(__name__)


@dramatiq.actor(
    queue_name=Queues.NOTIFICATIONS,
    max_retries=0,
    time_limit=60000,  # 1 minute
    priority=Priority.HIGH,
)
def deliver_group_message_push(
    group_id: str,
    school_id: str,
    sender_id: str,
    content: str,
) -> dict[str, Any]:
    """Push a new group message to every other member's devices.

    Args:
        group_id: Group the message was posted in.
        school_id: School of the group.
        sender_id: Author; excluded from delivery.
        content: Message text.

    Returns:
        Delivery summary, or an error summary if delivery failed.
    """

    async def _deliver() -> dict[str, Any]:
        from src.core.config import get_settings
        from src.domains.fanout.delivery import PushDeliveryService
        from src.infrastructure.database.connection import get_worker_session
        from src.infrastructure.notifications.channels import PushChannel

        try:
            async with get_worker_session() as session:
                service = PushDeliveryService(session, PushChannel(get_settings().push))
                return await service.deliver(group_id, school_id, sender_id, content)
        except Exception as e:
            logger.error("Push delivery failed for group %s: %s", group_id, str(e), exc_info=True)
            return {"group_id": group_id, "error": str(e)}

    return run_async(_deliver())

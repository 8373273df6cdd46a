# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Log context propagation for Dramatiq messages.

The school_id and request_id bound while an API request enqueues a task
travel in the message options and are re-bound in the worker, so a push
delivery can be traced back to the send that caused it.
"""

import logging
from typing import Any

import dramatiq
import structlog
from dramatiq import Message, Middleware

from src.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)

PROPAGATED_KEYS = ("school_id", "request_id")


class LogContextMiddleware(Middleware):
    """Carries request-scoped log fields from producer to worker."""

    def before_enqueue(
        self,
        broker: dramatiq.Broker,
        message: Message,
        delay: int | None,
    ) -> None:
        context = structlog.contextvars.get_contextvars()
        for key in PROPAGATED_KEYS:
            value = context.get(key)
            if value is not None and key not in message.options:
                message.options[key] = value

    def before_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
    ) -> None:
        bind_context(
            message_id=message.message_id,
            actor=message.actor_name,
            **{key: message.options.get(key) for key in PROPAGATED_KEYS},
        )

    def after_process_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
        *,
        result: Any = None,
        exception: BaseException | None = None,
    ) -> None:
        clear_context()

    def after_skip_message(
        self,
        broker: dramatiq.Broker,
        message: Message,
    ) -> None:
        clear_context()

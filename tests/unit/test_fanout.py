# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for push fan-out: enqueue trigger and worker-side delivery."""

import time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from src.domains.fanout.delivery import PUSH_BODY_LENGTH, PushDeliveryService
from src.domains.fanout.trigger import DeliveryFanoutTrigger
from src.infrastructure.notifications.channels import (
    ChannelResult,
    ChannelType,
    DeliveryStatus,
)


def create_mock_result(value):
    """Create a mock query result returning value from scalar_one_or_none."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def create_mock_scalars(values):
    """Create a mock query result returning values from scalars().all()."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = values
    return result


class TestDeliveryFanoutTrigger:
    """Enqueueing is best-effort."""

    @pytest.mark.asyncio
    async def test_enqueues_one_job(self, group_id, school_id, user_id):
        actor = MagicMock()
        trigger = DeliveryFanoutTrigger(actor=actor, timeout=1.0)

        await trigger.notify(group_id, school_id, user_id, "Hello")

        actor.send.assert_called_once_with(group_id, school_id, user_id, "Hello")

    @pytest.mark.asyncio
    async def test_enqueue_error_is_swallowed(self, group_id, school_id, user_id):
        actor = MagicMock()
        actor.send.side_effect = ConnectionError("broker down")
        trigger = DeliveryFanoutTrigger(actor=actor, timeout=1.0)

        await trigger.notify(group_id, school_id, user_id, "Hello")

    @pytest.mark.asyncio
    async def test_enqueue_timeout_is_swallowed(self, group_id, school_id, user_id):
        actor = MagicMock()
        actor.send.side_effect = lambda *args: time.sleep(0.2)
        trigger = DeliveryFanoutTrigger(actor=actor, timeout=0.01)

        await trigger.notify(group_id, school_id, user_id, "Hello")

    def test_default_actor_is_push_task(self):
        from src.infrastructure.background.tasks.notifications import (
            deliver_group_message_push,
        )

        assert DeliveryFanoutTrigger()._actor is deliver_group_message_push


@pytest.fixture
def channel():
    channel = MagicMock()
    channel.send = AsyncMock(
        return_value=ChannelResult(channel=ChannelType.PUSH, status=DeliveryStatus.SENT)
    )
    return channel


@pytest.fixture
def sample_group(group_id, school_id):
    return SimpleNamespace(id=group_id, school_id=school_id, name="Year 5 Parents")


class TestPushDeliveryService:
    """Recipients are every member except the sender, with a token."""

    @pytest.mark.asyncio
    async def test_sender_excluded_and_tokenless_dropped(
        self, mock_db, channel, sample_group, group_id, school_id, user_id
    ):
        with_token = str(uuid4())
        without_token = str(uuid4())
        mock_db.execute.side_effect = [
            create_mock_result(sample_group),
            create_mock_scalars([with_token, without_token]),
            create_mock_scalars(
                [
                    SimpleNamespace(user_id=with_token, token="tok-1", platform="ios"),
                    SimpleNamespace(user_id=with_token, token="tok-2", platform=None),
                ]
            ),
        ]
        mock_db.get.return_value = SimpleNamespace(full_name="Ms. Rivera")

        service = PushDeliveryService(mock_db, channel)
        summary = await service.deliver(group_id, school_id, user_id, "Trip tomorrow")

        assert summary["recipients"] == 2
        assert summary["sent"] == 1
        assert summary["no_token"] == 1

        payload = channel.send.await_args.args[0]
        assert payload.recipient_id == with_token
        assert payload.title == "Year 5 Parents"
        assert payload.message == "Ms. Rivera: Trip tomorrow"
        assert payload.push_tokens == [
            {"token": "tok-1", "platform": "ios"},
            {"token": "tok-2", "platform": "android"},
        ]

    @pytest.mark.asyncio
    async def test_body_truncated(self, mock_db, channel, sample_group, group_id, school_id, user_id):
        recipient = str(uuid4())
        mock_db.execute.side_effect = [
            create_mock_result(sample_group),
            create_mock_scalars([recipient]),
            create_mock_scalars([SimpleNamespace(user_id=recipient, token="t", platform="web")]),
        ]

        service = PushDeliveryService(mock_db, channel)
        await service.deliver(group_id, school_id, user_id, "x" * 500)

        payload = channel.send.await_args.args[0]
        assert len(payload.message) == PUSH_BODY_LENGTH
        assert payload.message.startswith("Someone: ")
        assert payload.message.endswith("...")

    @pytest.mark.asyncio
    async def test_failed_and_skipped_counted(
        self, mock_db, channel, sample_group, group_id, school_id, user_id
    ):
        first, second = str(uuid4()), str(uuid4())
        mock_db.execute.side_effect = [
            create_mock_result(sample_group),
            create_mock_scalars([first, second]),
            create_mock_scalars(
                [
                    SimpleNamespace(user_id=first, token="a", platform="android"),
                    SimpleNamespace(user_id=second, token="b", platform="android"),
                ]
            ),
        ]
        channel.send.side_effect = [
            ChannelResult(channel=ChannelType.PUSH, status=DeliveryStatus.FAILED),
            ChannelResult(channel=ChannelType.PUSH, status=DeliveryStatus.SKIPPED),
        ]

        service = PushDeliveryService(mock_db, channel)
        summary = await service.deliver(group_id, school_id, user_id, "hi")

        assert summary["failed"] == 1
        assert summary["skipped"] == 1
        assert summary["sent"] == 0

    @pytest.mark.asyncio
    async def test_missing_group(self, mock_db, channel, group_id, school_id, user_id):
        mock_db.execute.return_value = create_mock_result(None)

        service = PushDeliveryService(mock_db, channel)
        summary = await service.deliver(group_id, school_id, user_id, "hi")

        assert summary["error"] == "group_not_found"
        channel.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_other_members(
        self, mock_db, channel, sample_group, group_id, school_id, user_id
    ):
        mock_db.execute.side_effect = [
            create_mock_result(sample_group),
            create_mock_scalars([]),
        ]

        service = PushDeliveryService(mock_db, channel)
        summary = await service.deliver(group_id, school_id, user_id, "hi")

        assert summary["recipients"] == 0
        channel.send.assert_not_called()

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the FCM push channel."""

import json
from unittest.mock import MagicMock

import httpx
import pytest

from src.core.config import PushSettings
from src.infrastructure.notifications.channels import (
    DeliveryStatus,
    NotificationPayload,
    PushChannel,
)


def make_payload(tokens: list[dict[str, str]]) -> NotificationPayload:
    return NotificationPayload(
        title="Staff Room",
        message="Ana: meeting moved",
        recipient_id="recipient-1",
        group_id="group-1",
        school_id="school-1",
        sender_id="sender-1",
        push_tokens=tokens,
    )


def make_channel(handler) -> tuple[PushChannel, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(record))
    channel = PushChannel(
        PushSettings(firebase_project_id="demo-project", firebase_credentials_path="/tmp/sa.json"),
        http_client=client,
    )
    channel._credentials = MagicMock(token="access-token")
    return channel, requests


class TestSkipped:
    """Nothing is attempted without tokens or configuration."""

    @pytest.mark.asyncio
    async def test_no_tokens(self):
        channel = PushChannel(PushSettings())

        result = await channel.send(make_payload([]))

        assert result.status == DeliveryStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_disabled(self):
        channel = PushChannel(PushSettings(enabled=False))

        result = await channel.send(make_payload([{"token": "t", "platform": "android"}]))

        assert result.status == DeliveryStatus.SKIPPED
        assert result.error_message == "Push notifications disabled"

    @pytest.mark.asyncio
    async def test_not_configured(self):
        channel = PushChannel(PushSettings(firebase_project_id=None))

        result = await channel.send(make_payload([{"token": "t", "platform": "android"}]))

        assert result.status == DeliveryStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_missing_credentials_file(self, tmp_path):
        channel = PushChannel(
            PushSettings(
                firebase_project_id="demo-project",
                firebase_credentials_path=str(tmp_path / "missing.json"),
            )
        )

        result = await channel.send(make_payload([{"token": "t", "platform": "android"}]))

        assert result.status == DeliveryStatus.SKIPPED
        assert "not found" in result.error_message


class TestSend:
    """Requests sent to FCM."""

    @pytest.mark.asyncio
    async def test_success_per_platform(self):
        channel, requests = make_channel(
            lambda request: httpx.Response(200, json={"name": "projects/demo/messages/42"})
        )

        result = await channel.send(
            make_payload(
                [
                    {"token": "android-token-0123456789", "platform": "android"},
                    {"token": "ios-token-0123456789abc", "platform": "ios"},
                ]
            )
        )

        assert result.status == DeliveryStatus.SENT
        assert result.message_id == "42"
        assert result.metadata["success_count"] == 2
        assert len(requests) == 2

        first = json.loads(requests[0].content)["message"]
        assert requests[0].url.path == "/v1/projects/demo-project/messages:send"
        assert requests[0].headers["Authorization"] == "Bearer access-token"
        assert first["notification"] == {"title": "Staff Room", "body": "Ana: meeting moved"}
        assert first["data"]["group_id"] == "group-1"
        assert first["android"]["priority"] == "high"

        second = json.loads(requests[1].content)["message"]
        assert second["apns"]["payload"]["aps"]["sound"] == "default"

    @pytest.mark.asyncio
    async def test_partial_failure_is_sent(self):
        responses = iter(
            [
                httpx.Response(404, text="UNREGISTERED"),
                httpx.Response(200, json={"name": "projects/demo/messages/7"}),
            ]
        )
        channel, _ = make_channel(lambda request: next(responses))

        result = await channel.send(
            make_payload(
                [
                    {"token": "stale-token-0123456789", "platform": "android"},
                    {"token": "fresh-token-0123456789", "platform": "web"},
                ]
            )
        )

        assert result.status == DeliveryStatus.SENT
        assert result.metadata["failure_count"] == 1

    @pytest.mark.asyncio
    async def test_all_failed(self):
        channel, _ = make_channel(lambda request: httpx.Response(500, text="internal"))

        result = await channel.send(
            make_payload([{"token": "token-0123456789abcdef", "platform": "android"}])
        )

        assert result.status == DeliveryStatus.FAILED

    @pytest.mark.asyncio
    async def test_transport_error_is_failure(self):
        def boom(request):
            raise httpx.ConnectError("unreachable")

        channel, _ = make_channel(boom)

        result = await channel.send(
            make_payload([{"token": "token-0123456789abcdef", "platform": "android"}])
        )

        assert result.status == DeliveryStatus.FAILED
        assert result.metadata["results"][0]["token"].endswith("...")

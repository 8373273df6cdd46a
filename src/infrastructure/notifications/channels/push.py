# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push notification channel using Firebase Cloud Messaging.

Sends one FCM HTTP v1 request per device token. Credentials come from
PushSettings (PUSH_FIREBASE_PROJECT_ID, PUSH_FIREBASE_CREDENTIALS_PATH);
when they are missing the channel reports SKIPPED instead of failing.
"""

import asyncio
import os
from typing import TYPE_CHECKING, Any

import httpx
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from src.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    NotificationPayload,
)

if TYPE_CHECKING:
    from src.core.config.settings import PushSettings

FCM_API_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
ANDROID_CHANNEL_ID = "group_messages"


def _mask(token: str) -> str:
    return token[:20] + "..."


class PushChannel(BaseChannel):
    """Push notification channel using Firebase Cloud Messaging.

    Push tokens are expected in payload.push_tokens as
    [{"platform": "android|ios|web", "token": "device_token"}].
    """

    def __init__(
        self,
        settings: "PushSettings",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self._settings = settings
        self._http_client = http_client
        self._credentials: service_account.Credentials | None = None
        self._init_error: str | None = None

    @property
    def channel_type(self) -> ChannelType:
        return ChannelType.PUSH

    def _ensure_initialized(self) -> bool:
        """Load service account credentials once.

        Returns:
            True if credentials are available.
        """
        if self._credentials is not None:
            return True
        if self._init_error:
            return False

        if not self._settings.enabled:
            self._init_error = "Push notifications disabled"
            return False

        credentials_path = self._settings.firebase_credentials_path
        if not credentials_path or not self._settings.firebase_project_id:
            self._init_error = "Firebase credentials not configured"
            self.logger.warning(
                "Push notifications disabled: PUSH_FIREBASE_CREDENTIALS_PATH or "
                "PUSH_FIREBASE_PROJECT_ID not set"
            )
            return False

        if not os.path.exists(credentials_path):
            self._init_error = f"Credentials file not found: {credentials_path}"
            self.logger.error(self._init_error)
            return False

        try:
            self._credentials = service_account.Credentials.from_service_account_file(
                credentials_path, scopes=[FCM_SCOPE]
            )
        except (GoogleAuthError, ValueError) as e:
            self._init_error = f"Failed to load credentials: {e}"
            self.logger.error(self._init_error)
            return False

        self.logger.info(
            "FCM push channel initialized for project %s",
            self._settings.firebase_project_id,
        )
        return True

    async def _get_access_token(self) -> str | None:
        if self._credentials is None:
            return None
        try:
            # google-auth refresh is blocking
            await asyncio.to_thread(self._credentials.refresh, Request())
        except GoogleAuthError as e:
            self.logger.error("Failed to get FCM access token: %s", e)
            return None
        return self._credentials.token

    async def send(self, payload: NotificationPayload) -> ChannelResult:
        """Send a push to every token in the payload.

        Returns:
            SENT if at least one token accepted the message, FAILED if all
            attempts failed, SKIPPED if nothing could be attempted.
        """
        if not payload.push_tokens:
            return self.create_skipped_result("No push tokens available")

        if not self._ensure_initialized():
            return self.create_skipped_result(
                self._init_error or "Push channel not configured"
            )

        access_token = await self._get_access_token()
        if not access_token:
            return self.create_failure_result("Failed to obtain access token")

        results: list[dict[str, Any]] = []
        if self._http_client is not None:
            for token_info in payload.push_tokens:
                results.append(
                    await self._send_to_token(self._http_client, token_info, payload, access_token)
                )
        else:
            async with httpx.AsyncClient(timeout=self._settings.timeout) as client:
                for token_info in payload.push_tokens:
                    results.append(
                        await self._send_to_token(client, token_info, payload, access_token)
                    )

        success_count = sum(1 for result in results if result["success"])
        failure_count = len(results) - success_count

        if success_count == 0:
            return self.create_failure_result(
                f"All {failure_count} push notifications failed",
                metadata={"results": results},
            )

        return self.create_success_result(
            message_id=next(r["message_id"] for r in results if r["success"]),
            metadata={
                "success_count": success_count,
                "failure_count": failure_count,
                "results": results,
            },
        )

    async def _send_to_token(
        self,
        client: httpx.AsyncClient,
        token_info: dict[str, str],
        payload: NotificationPayload,
        access_token: str,
    ) -> dict[str, Any]:
        token = token_info["token"]
        platform = token_info.get("platform") or "android"
        url = FCM_API_URL.format(project_id=self._settings.firebase_project_id)

        try:
            response = await client.post(
                url,
                headers={"Authorization": f"Bearer {access_token}"},
                json={"message": self._build_fcm_message(token, platform, payload)},
            )
        except httpx.HTTPError as e:
            self.logger.warning("Failed to send push to %s: %s", _mask(token), e)
            return {"success": False, "token": _mask(token), "platform": platform, "error": str(e)}

        if response.status_code != 200:
            self.logger.warning(
                "FCM request failed (%d): %s", response.status_code, response.text
            )
            return {
                "success": False,
                "token": _mask(token),
                "platform": platform,
                "status_code": response.status_code,
                "error": response.text,
            }

        message_id = response.json().get("name", "").split("/")[-1]
        return {
            "success": True,
            "token": _mask(token),
            "platform": platform,
            "message_id": message_id,
        }

    def _build_fcm_message(
        self,
        token: str,
        platform: str,
        payload: NotificationPayload,
    ) -> dict[str, Any]:
        data = {
            "type": "group_message",
            "group_id": payload.group_id,
            "school_id": payload.school_id,
            "sender_id": payload.sender_id,
            **payload.data,
        }
        message: dict[str, Any] = {
            "token": token,
            "notification": {"title": payload.title, "body": payload.message},
            "data": data,
        }

        if platform == "android":
            message["android"] = {
                "priority": "high",
                "notification": {"channel_id": ANDROID_CHANNEL_ID},
            }
        elif platform == "ios":
            message["apns"] = {
                "headers": {"apns-priority": "10"},
                "payload": {"aps": {"sound": "default"}},
            }
        elif platform == "web":
            message["webpush"] = {"headers": {"Urgency": "high"}}

        return message

"""Push fan-out provider clients."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from catalog_pipeline.config import settings

logger = logging.getLogger(__name__)

FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
FCM_ERROR_TYPE = "type.googleapis.com/google.firebase.fcm.v1.FcmError"

UNREGISTERED = "UNREGISTERED"
INVALID_ARGUMENT = "INVALID_ARGUMENT"
TIMEOUT = "TIMEOUT"
NETWORK_ERROR = "NETWORK_ERROR"


@dataclass(slots=True)
class PushMessage:
    token: str
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)
    channel_id: str = "notifications"
    badge: int = 1


@dataclass(slots=True)
class SendResult:
    token: str
    success: bool
    error_code: str | None = None
    permanently_invalid: bool = False


class PushProvider(ABC):
    """Sends a batch of messages and reports an outcome per message."""

    @abstractmethod
    async def send_each(self, messages: Sequence[PushMessage]) -> list[SendResult]:
        """Return one result per message, in the same order."""

    async def aclose(self) -> None:
        """Release network resources held by the provider."""


def classify_fcm_error(payload: Any) -> tuple[str, bool]:
    """Return ``(error_code, permanently_invalid)`` for an FCM error body.

    Only an unregistered token, or an invalid-argument error that names the
    registration token, means the credential is dead for good.
    """
    error = payload.get("error", {}) if isinstance(payload, dict) else {}
    code = error.get("status") or "UNKNOWN"
    for detail in error.get("details") or []:
        if detail.get("@type") == FCM_ERROR_TYPE and detail.get("errorCode"):
            code = detail["errorCode"]
            break

    if code == UNREGISTERED:
        return code, True
    message = str(error.get("message", "")).lower()
    if code == INVALID_ARGUMENT and "registration token" in message:
        return code, True
    return code, False


class FCMPushProvider(PushProvider):
    """Firebase Cloud Messaging over the HTTP v1 API."""

    def __init__(
        self,
        *,
        project_id: str,
        access_token: str,
        session: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._url = FCM_SEND_URL.format(project_id=project_id)
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._owns_session = session is None
        self._session = session or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def send_each(self, messages: Sequence[PushMessage]) -> list[SendResult]:
        return list(await asyncio.gather(*(self._send(message) for message in messages)))

    async def _send(self, message: PushMessage) -> SendResult:
        try:
            response = await self._session.post(
                self._url,
                json={"message": self._build_message(message)},
                headers=self._headers,
            )
        except httpx.TimeoutException as exc:
            logger.warning("FCM send timed out: %s", exc)
            return SendResult(token=message.token, success=False, error_code=TIMEOUT)
        except httpx.HTTPError as exc:
            logger.warning("FCM send failed: %s", exc)
            return SendResult(token=message.token, success=False, error_code=NETWORK_ERROR)

        if response.is_success:
            return SendResult(token=message.token, success=True)

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        code, permanent = classify_fcm_error(payload)
        return SendResult(
            token=message.token,
            success=False,
            error_code=code,
            permanently_invalid=permanent,
        )

    @staticmethod
    def _build_message(message: PushMessage) -> dict[str, Any]:
        return {
            "token": message.token,
            "notification": {"title": message.title, "body": message.body},
            "data": message.data,
            "android": {
                "priority": "HIGH",
                "notification": {
                    "sound": "default",
                    "channel_id": message.channel_id,
                },
            },
            "apns": {
                "payload": {
                    "aps": {"sound": "default", "badge": message.badge},
                },
            },
        }

    async def aclose(self) -> None:
        if self._owns_session:
            await self._session.aclose()


def create_push_provider() -> PushProvider | None:
    if not settings.push_enabled:
        return None
    return FCMPushProvider(
        project_id=settings.FCM_PROJECT_ID,
        access_token=settings.FCM_ACCESS_TOKEN,
        timeout=settings.PUSH_TIMEOUT_SECONDS,
    )

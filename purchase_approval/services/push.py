"""Web Push transport: VAPID signing and payload encryption via pywebpush.

The transport is a black box that accepts a payload and a subscription
and either returns or raises DeliveryError carrying the push service's
HTTP status. Callers decide what a status means.
"""

import asyncio
import json
import logging
from typing import Any, Protocol

from pywebpush import WebPushException, webpush

from ..core.config import get_settings
from .errors import DeliveryError

logger = logging.getLogger(__name__)

# Status codes meaning the subscription is permanently broken
TERMINAL_STATUS_CODES = frozenset({401, 403, 404, 410})


class PushSender(Protocol):
    """Anything able to deliver one push message to one subscription."""

    async def send(
        self,
        subscription_info: dict[str, Any],
        payload: dict[str, Any],
        urgency: str = "normal",
    ) -> None:
        ...


class WebPushSender:
    """PushSender backed by pywebpush.

    pywebpush is synchronous (requests under the hood), so each send runs
    in a worker thread to keep the event loop free.
    """

    def __init__(
        self,
        vapid_private_key: str | None,
        vapid_subject: str,
        ttl_seconds: int = 300,
    ):
        self._vapid_private_key = vapid_private_key
        self._vapid_subject = vapid_subject
        self._ttl = ttl_seconds

    @classmethod
    def from_settings(cls) -> "WebPushSender":
        settings = get_settings()
        return cls(
            vapid_private_key=settings.vapid_private_key,
            vapid_subject=settings.vapid_subject,
            ttl_seconds=settings.push_ttl_seconds,
        )

    async def send(
        self,
        subscription_info: dict[str, Any],
        payload: dict[str, Any],
        urgency: str = "normal",
    ) -> None:
        if not self._vapid_private_key:
            raise DeliveryError("Push delivery is not configured (missing VAPID private key)")

        try:
            await asyncio.to_thread(
                webpush,
                subscription_info=subscription_info,
                data=json.dumps(payload),
                vapid_private_key=self._vapid_private_key,
                vapid_claims={"sub": self._vapid_subject},
                ttl=self._ttl,
                headers={"Urgency": urgency},
            )
        except WebPushException as e:
            # A 4xx requests.Response is falsy, so compare against None
            status_code = e.response.status_code if e.response is not None else None
            raise DeliveryError(f"Push service rejected message: {e.message}", status_code) from e
        except Exception as e:
            raise DeliveryError(f"Push delivery failed: {e}") from e


def is_terminal_failure(status_code: int | None) -> bool:
    return status_code in TERMINAL_STATUS_CODES

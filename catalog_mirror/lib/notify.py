"""Operator notifications.

Used to escalate jobs that abort after sustained failures. Delivery is
best effort: failures are logged and never raised to the caller.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

__all__ = ["Notifier", "WebhookNotifier", "LogNotifier"]


class Notifier(ABC):
    @abstractmethod
    def notify(self, channel: str, message: str) -> bool:
        """Deliver ``message``. Returns False if delivery failed."""
        ...


class LogNotifier(Notifier):
    """Writes notifications to the log. Default when no webhook is configured."""

    def notify(self, channel: str, message: str) -> bool:
        logger.warning("[notify:%s] %s", channel, message)
        return True


class WebhookNotifier(Notifier):
    """Posts a Lark/Feishu-style text message to a chat webhook."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    def notify(self, channel: str, message: str) -> bool:
        payload = {
            "msg_type": "text",
            "content": {"text": f"[{channel}] {message}" if channel else message},
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Webhook POST failed for %s: %s", self.url, exc)
            return False
        logger.debug("Webhook POST succeeded for %s", self.url)
        return True

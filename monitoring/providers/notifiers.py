"""Notification channels for triggered alerts."""

from collections.abc import Iterable
from typing import Mapping

import httpx

from monitoring.core.contracts import NotificationMethod, Notifier, parse_enum
from monitoring.core.errors import InvalidArgument
from monitoring.logging import get_logger, log_context

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0


class SlackNotifier:
    """Slack incoming webhook."""

    def __init__(
        self,
        webhook_url: str | None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._transport = transport

    async def send(self, message: str) -> bool:
        """Post a message to the channel.

        Returns:
            True on a 2xx response, False when unconfigured or on any failure
        """
        if not self.webhook_url:
            logger.warning("Slack webhook URL not configured, notification skipped")
            return False

        payload = {"text": f"<!channel> {message}"}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(self.webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Slack notification failed: {e}")
            return False

        if response.is_success:
            logger.info("Slack notification sent")
            return True

        logger.error(
            f"Slack notification rejected: HTTP {response.status_code}",
            extra=log_context(body=response.text[:200]),
        )
        return False


class NotificationDispatcher:
    """Fans a message out to the channels a rule asks for."""

    def __init__(self, channels: Mapping[NotificationMethod, Notifier]) -> None:
        self.channels = dict(channels)

    async def dispatch(
        self, methods: Iterable[str | NotificationMethod], message: str
    ) -> tuple[bool, str]:
        """Send through each requested method; an empty set means Slack.

        Returns:
            (sent, result) where sent is True if any channel succeeded and
            result summarises each method, e.g. ``"SLACK: sent; EMAIL: no channel"``
        """
        requested: list[NotificationMethod] = []
        outcomes: list[str] = []
        for raw in methods or []:
            try:
                method = parse_enum(NotificationMethod, raw, "notification method")
            except InvalidArgument:
                outcomes.append(f"{raw}: unknown method")
                continue
            if method not in requested:
                requested.append(method)
        if not requested and not outcomes:
            requested = [NotificationMethod.SLACK]

        sent = False
        for method in requested:
            channel = self.channels.get(method)
            if channel is None:
                outcomes.append(f"{method.value}: no channel")
                continue
            try:
                ok = await channel.send(message)
            except Exception as e:
                logger.exception(f"{method.value} notifier raised")
                ok = False
                outcomes.append(f"{method.value}: error {e}")
                continue
            sent = sent or ok
            outcomes.append(f"{method.value}: {'sent' if ok else 'failed'}")

        return sent, "; ".join(outcomes)

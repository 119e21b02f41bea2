"""
Notification dispatcher - concurrent, partial-failure-tolerant fan-out.

A recorded violation is delivered to every enabled channel linked to its
rule. Deliveries run in parallel; one channel failing (bad config, network
error, HTTP status >= 400, timeout) never stops the others. After all
deliveries finish, failures are merged into a single NotificationError.

Delivery is best-effort: no retries, no durable queue.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional, Sequence, Tuple

import httpx
import sentry_sdk

from app.core.config import settings
from app.models.channel_config import ChannelConfigError, parse_channel_config
from app.models.notification_channel import NotificationChannel
from app.models.rule_violation import Severity
from app.models.violation import ViolationEvent
from app.modules.notifications.formatters import OutboundRequest, build_request

logger = logging.getLogger(__name__)

CANCELLED = "delivery cancelled"


class NotificationError(Exception):
    """
    Raised when one or more channels failed to receive a notification.

    Attributes:
        failures: (channel name, error) pairs for every failed channel
    """

    def __init__(self, failures: List[Tuple[str, str]]):
        self.failures = failures
        summary = "; ".join(f"{name}: {error}" for name, error in failures)
        super().__init__(f"notification errors: {summary}")

    @property
    def failed_channels(self) -> List[str]:
        return [name for name, _ in self.failures]


class NotificationDispatcher:
    """
    Fans violation events out to notification channels.

    Usage:
        dispatcher = NotificationDispatcher()
        try:
            await dispatcher.notify(event, channels)
        except NotificationError as e:
            logger.warning(str(e))
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        max_response_bytes: Optional[int] = None,
    ):
        """
        Args:
            client: Shared HTTP client (a short-lived one is created per call if omitted)
            timeout: Per-channel delivery timeout in seconds
            max_response_bytes: Upper bound on response body bytes read per delivery
        """
        self._client = client
        self.timeout = settings.NOTIFY_TIMEOUT_SECONDS if timeout is None else timeout
        self.max_response_bytes = (
            settings.NOTIFY_MAX_RESPONSE_BYTES if max_response_bytes is None else max_response_bytes
        )

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    async def notify(
        self,
        event: ViolationEvent,
        channels: Sequence[NotificationChannel],
        timeout: Optional[float] = None,
    ) -> None:
        """
        Deliver an event to all enabled channels concurrently.

        Returns once every channel has finished. Zero enabled channels is a
        no-op.

        Raises:
            NotificationError: One or more channels failed (others still delivered)
            asyncio.CancelledError: The call was cancelled; unfinished
                deliveries are logged as failed first
        """
        active = [channel for channel in channels if channel.enabled]
        if not active:
            return
        await self._fan_out(event, active, timeout)

    async def test_channel(self, channel: NotificationChannel, timeout: Optional[float] = None) -> None:
        """
        Send a synthetic, clearly labelled violation to one channel.

        Used to verify a channel's configuration; ignores the enabled flag.

        Raises:
            NotificationError: The test delivery failed
        """
        event = ViolationEvent(
            rule_id=0,
            rule_name="Test Rule",
            user_name="test_user",
            severity=Severity.INFO.value,
            message=f"This is a test notification from {settings.APP_NAME}",
            confidence_score=100.0,
            occurred_at=datetime.utcnow(),
        )
        await self._fan_out(event, [channel], timeout)

    async def _fan_out(
        self,
        event: ViolationEvent,
        channels: Sequence[NotificationChannel],
        timeout: Optional[float],
    ) -> None:
        """
        Deliver to all channels at once and raise the aggregated failures.

        If the caller is cancelled mid-flight, deliveries still running are
        cancelled and reported as failed (logged and sent to Sentry like any
        other failure), then the CancelledError is re-raised.
        """
        if timeout is None:
            timeout = self.timeout

        async with self._http() as client:
            deliveries = [
                asyncio.ensure_future(self._deliver(client, channel, event, timeout))
                for channel in channels
            ]
            try:
                results = await asyncio.gather(*deliveries)
            except asyncio.CancelledError:
                results = [
                    task.result() if task.done() and not task.cancelled() else CANCELLED
                    for task in deliveries
                ]
                self._report(event, channels, results)
                raise

        error = self._report(event, channels, results)
        if error is not None:
            raise error

    def _report(
        self,
        event: ViolationEvent,
        channels: Sequence[NotificationChannel],
        results: Sequence[Optional[str]],
    ) -> Optional[NotificationError]:
        """Log the fan-out outcome; returns the aggregated error, if any."""
        failures = [(channel.name, error) for channel, error in zip(channels, results) if error]
        if not failures:
            logger.info(
                f"Violation notification delivered to {len(channels)} channel(s)",
                extra={"violation_id": event.id, "rule_id": event.rule_id, "channels": len(channels)},
            )
            return None

        error = NotificationError(failures)
        logger.warning(
            str(error),
            extra={
                "violation_id": event.id,
                "rule_id": event.rule_id,
                "failed_channels": error.failed_channels,
                "channels": len(channels),
            },
        )
        sentry_sdk.capture_message(
            f"Notification delivery failed for {len(failures)} of {len(channels)} channel(s)",
            level="warning",
        )
        return error

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        channel: NotificationChannel,
        event: ViolationEvent,
        timeout: float,
    ) -> Optional[str]:
        """
        Deliver to a single channel.

        Returns:
            None on success, otherwise an error description
        """
        try:
            config = parse_channel_config(channel.channel_type, channel.config)
            request = build_request(event, config)
            status = await asyncio.wait_for(self._send(client, request), timeout)
        except ChannelConfigError as e:
            return str(e)
        except asyncio.TimeoutError:
            return f"timed out after {timeout:g}s"
        except asyncio.CancelledError:
            # _fan_out re-raises the cancel after reporting
            return CANCELLED
        except httpx.HTTPError as e:
            return f"sending request: {str(e) or type(e).__name__}"
        except Exception as e:
            logger.error(
                f"Unexpected error notifying channel {channel.name}: {e}",
                extra={"channel_id": channel.id, "channel_type": channel.channel_type},
            )
            sentry_sdk.capture_exception(e)
            return f"unexpected error: {e}"

        if status >= 400:
            return f"{channel.channel_type} returned status {status}"
        return None

    async def _send(self, client: httpx.AsyncClient, request: OutboundRequest) -> int:
        """Send a request and drain at most max_response_bytes of the body."""
        async with client.stream(
            request.method,
            request.url,
            headers=request.headers,
            json=request.json_body,
            data=request.data,
            content=request.content,
        ) as response:
            received = 0
            if self.max_response_bytes > 0:
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received >= self.max_response_bytes:
                        break
            return response.status_code

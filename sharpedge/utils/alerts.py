"""
Outbound alert dispatcher.

Posts formatted messages to Discord-style webhooks ({"content": ...})
through the shared HTTP client, with progressive-backoff retries. A failed
send returns False and never raises.
"""

import asyncio
import time
from typing import Optional

import httpx
import structlog

logger = structlog.get_logger()


class WebhookDispatcher:
    """
    Webhook alert dispatcher.

    Usage:
        dispatcher = WebhookDispatcher(http_client)
        sent = await dispatcher.send(settings.alerts.webhook_url, message)
    """

    # Retry settings
    MAX_RETRIES = 3
    RETRY_DELAYS = [1.0, 2.0, 5.0]  # Progressive backoff

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry_delays: Optional[list[float]] = None,
    ):
        self.logger = logger.bind(component="webhook_dispatcher")
        self.retry_delays = retry_delays if retry_delays is not None else self.RETRY_DELAYS

        self._client = client
        self._rate_limit_until: dict[str, float] = {}

        self.sent_count = 0
        self.failed_count = 0

    async def send(self, destination: str, message: str) -> bool:
        """
        Send a text message to a webhook.

        Returns:
            True if delivered
        """
        if not destination:
            return False

        if time.time() < self._rate_limit_until.get(destination, 0):
            self.logger.debug("Webhook rate limited, skipping")
            self.failed_count += 1
            return False

        payload = {"content": message}
        for attempt in range(self.MAX_RETRIES):
            try:
                response = await self._client.post(destination, json=payload)

                if response.status_code == 429:
                    retry_after = float(response.json().get("retry_after", 5))
                    self._rate_limit_until[destination] = time.time() + retry_after
                    self.logger.warning("Webhook rate limited", retry_after=retry_after)
                    break

                if response.status_code in (200, 204):
                    self.sent_count += 1
                    return True

                self.logger.warning(
                    "Webhook rejected message",
                    status=response.status_code,
                    body=response.text[:200],
                )
                if response.status_code < 500:
                    break

            except (httpx.TimeoutException, httpx.TransportError) as e:
                self.logger.debug(
                    "Webhook send failed",
                    error_type=type(e).__name__,
                    attempt=attempt + 1,
                )
            except ValueError as e:
                self.logger.warning("Malformed webhook response", error=str(e))
                break

            if attempt < self.MAX_RETRIES - 1 and self.retry_delays:
                delay = self.retry_delays[min(attempt, len(self.retry_delays) - 1)]
                await asyncio.sleep(delay)

        self.failed_count += 1
        return False

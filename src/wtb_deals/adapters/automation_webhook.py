"""Outbound automation webhook client."""

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class AutomationWebhook(Protocol):
    """Interface for notifying the external automation scenario."""

    async def post(self, payload: dict[str, object]) -> bool:
        """Send a JSON payload; return true when it was accepted."""


@dataclass
class HttpxAutomationWebhook(AutomationWebhook):
    """Webhook client using httpx; a missing URL disables delivery."""

    url: str | None
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, url: str | None) -> "HttpxAutomationWebhook":
        """Create a webhook client with a managed httpx session."""
        return cls(url=url, http_client=httpx.AsyncClient())

    async def post(self, payload: dict[str, object]) -> bool:
        """POST the payload as JSON."""
        if not self.url:
            logger.warning(
                "Automation webhook URL is not configured",
                extra={"event": payload.get("event")},
            )
            return False
        response = await self.http_client.post(self.url, json=payload, timeout=15)
        response.raise_for_status()
        return True

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

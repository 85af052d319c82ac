"""Discord REST API client adapter."""

from dataclasses import dataclass
from typing import Protocol

import httpx

DISCORD_API_BASE_URL = "https://discord.com/api/v10"


class DiscordClient(Protocol):
    """Interface for the Discord REST calls the orchestrator needs."""

    async def send_message(
        self, channel_id: str, payload: dict[str, object]
    ) -> dict[str, object]:
        """Post a message to a channel and return the created message."""

    async def edit_message(
        self, channel_id: str, message_id: str, payload: dict[str, object]
    ) -> dict[str, object]:
        """Edit an existing message and return it."""

    async def get_message(self, channel_id: str, message_id: str) -> dict[str, object]:
        """Fetch a message."""

    async def create_channel(
        self, guild_id: str, payload: dict[str, object]
    ) -> dict[str, object]:
        """Create a guild channel and return it."""

    async def delete_channel(self, channel_id: str) -> None:
        """Delete a channel."""

    async def list_guild_channels(self, guild_id: str) -> list[dict[str, object]]:
        """Return all channels of a guild."""

    async def create_dm_channel(self, user_id: str) -> dict[str, object]:
        """Open (or fetch) the DM channel with a user."""


@dataclass
class HttpxDiscordClient:
    """Discord client implemented with httpx."""

    bot_token: str
    http_client: httpx.AsyncClient
    base_url: str = DISCORD_API_BASE_URL

    @classmethod
    def create(cls, bot_token: str) -> "HttpxDiscordClient":
        """Create a Discord client with a managed httpx session."""
        return cls(
            bot_token=bot_token,
            http_client=httpx.AsyncClient(
                headers={"Authorization": f"Bot {bot_token}"}
            ),
        )

    async def send_message(
        self, channel_id: str, payload: dict[str, object]
    ) -> dict[str, object]:
        """Create a message in a channel."""
        url = f"{self.base_url}/channels/{channel_id}/messages"
        response = await self.http_client.post(url, json=payload, timeout=10)
        response.raise_for_status()
        return response.json()

    async def edit_message(
        self, channel_id: str, message_id: str, payload: dict[str, object]
    ) -> dict[str, object]:
        """Edit a message in a channel."""
        url = f"{self.base_url}/channels/{channel_id}/messages/{message_id}"
        response = await self.http_client.patch(url, json=payload, timeout=10)
        response.raise_for_status()
        return response.json()

    async def get_message(self, channel_id: str, message_id: str) -> dict[str, object]:
        """Fetch a message from a channel."""
        url = f"{self.base_url}/channels/{channel_id}/messages/{message_id}"
        response = await self.http_client.get(url, timeout=10)
        response.raise_for_status()
        return response.json()

    async def create_channel(
        self, guild_id: str, payload: dict[str, object]
    ) -> dict[str, object]:
        """Create a channel in a guild."""
        url = f"{self.base_url}/guilds/{guild_id}/channels"
        response = await self.http_client.post(url, json=payload, timeout=10)
        response.raise_for_status()
        return response.json()

    async def delete_channel(self, channel_id: str) -> None:
        """Delete a channel."""
        url = f"{self.base_url}/channels/{channel_id}"
        response = await self.http_client.delete(url, timeout=10)
        response.raise_for_status()

    async def list_guild_channels(self, guild_id: str) -> list[dict[str, object]]:
        """List the channels of a guild."""
        url = f"{self.base_url}/guilds/{guild_id}/channels"
        response = await self.http_client.get(url, timeout=10)
        response.raise_for_status()
        return response.json()

    async def create_dm_channel(self, user_id: str) -> dict[str, object]:
        """Open the DM channel with a user."""
        url = f"{self.base_url}/users/@me/channels"
        response = await self.http_client.post(
            url, json={"recipient_id": user_id}, timeout=10
        )
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

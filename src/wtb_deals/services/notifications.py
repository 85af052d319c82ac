"""Best-effort outbound notifications on the messaging platform."""

import asyncio
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

import httpx

from wtb_deals.adapters.discord_client import DiscordClient
from wtb_deals.domain.deals import Deal
from wtb_deals.domain.errors import InvalidStateError
from wtb_deals.services.messages import (
    OutboundMessage,
    expired_listing,
    listing_claim_components,
)

logger = logging.getLogger(__name__)

VIEW_CHANNEL = 1 << 10
SEND_MESSAGES = 1 << 11
ATTACH_FILES = 1 << 15
READ_MESSAGE_HISTORY = 1 << 16
MEMBER_PERMISSIONS = VIEW_CHANNEL | SEND_MESSAGES | ATTACH_FILES | READ_MESSAGE_HISTORY

_GUILD_TEXT = 0
_ROLE_OVERWRITE = 0
_MEMBER_OVERWRITE = 1
_CHANNEL_NAME_PATTERN = re.compile(r"[^a-z0-9-]+")


def deal_channel_name(deal: Deal) -> str:
    """Channel name for a deal, e.g. ``wtb-dd1391-100-44``."""
    raw = f"wtb-{deal.sku}-{deal.size}".lower().replace(" ", "-")
    cleaned = _CHANNEL_NAME_PATTERN.sub("", raw).strip("-")
    return (cleaned or f"wtb-{deal.id}")[:100]


@dataclass
class NotificationDispatcher:
    """Wraps platform calls whose failure must never undo a transition.

    Every method except ``create_deal_channel`` logs and swallows platform
    errors and reports the outcome through its return value.
    """

    discord: DiscordClient
    guild_id: str
    category_ids: list[str] = field(default_factory=list)
    approver_role_ids: list[str] = field(default_factory=list)
    listings_channel_id: str | None = None
    max_channels_per_category: int = 50
    channel_delete_delay: float = 2.5
    _pending: set[asyncio.Task[None]] = field(default_factory=set, repr=False)

    async def send(
        self, channel_id: str, message: OutboundMessage
    ) -> dict[str, object] | None:
        """Post a message; return it, or None when the call failed."""
        try:
            return await self.discord.send_message(channel_id, message.to_payload())
        except httpx.HTTPError:
            logger.exception("Failed to send message", extra={"channel_id": channel_id})
            return None

    async def edit(
        self, channel_id: str, message_id: str, message: OutboundMessage
    ) -> bool:
        """Edit a message in place."""
        try:
            await self.discord.edit_message(
                channel_id, message_id, message.to_payload()
            )
        except httpx.HTTPError:
            logger.exception(
                "Failed to edit message",
                extra={"channel_id": channel_id, "message_id": message_id},
            )
            return False
        return True

    async def edit_or_send(
        self, channel_id: str, message_id: str | None, message: OutboundMessage
    ) -> bool:
        """Edit the message if it still exists, otherwise post a new one."""
        if message_id and await self.edit(channel_id, message_id, message):
            return True
        return await self.send(channel_id, message) is not None

    async def send_dm(
        self, user_id: str, message: OutboundMessage
    ) -> dict[str, object] | None:
        """Send a direct message to a user."""
        try:
            channel = await self.discord.create_dm_channel(user_id)
            return await self.discord.send_message(
                str(channel["id"]), message.to_payload()
            )
        except httpx.HTTPError:
            logger.exception(
                "Failed to send direct message", extra={"user_id": user_id}
            )
            return None

    def _listing_location(self, deal: Deal) -> tuple[str, str] | None:
        channel_id = deal.listing_channel_id or self.listings_channel_id
        if not channel_id or not deal.claim_message_id:
            return None
        return channel_id, deal.claim_message_id

    async def set_listing_claim_enabled(self, deal: Deal, enabled: bool) -> bool:
        """Enable or disable the claim button on the public listing."""
        location = self._listing_location(deal)
        if location is None:
            logger.info("Listing message not resolvable", extra={"deal_id": deal.id})
            return False
        channel_id, message_id = location
        return await self.edit(
            channel_id,
            message_id,
            OutboundMessage(components=listing_claim_components(deal.id, enabled)),
        )

    async def mark_listing_expired(self, deal: Deal) -> bool:
        """Disable the listing buttons and prefix its title."""
        location = self._listing_location(deal)
        if location is None:
            return False
        channel_id, message_id = location
        try:
            message = await self.discord.get_message(channel_id, message_id)
            return await self.edit(channel_id, message_id, expired_listing(message))
        except Exception:
            logger.exception(
                "Failed to mark listing expired", extra={"deal_id": deal.id}
            )
            return False

    async def pick_deal_category(self) -> str | None:
        """Return a configured category with room for another deal channel.

        Raises InvalidStateError when every configured category is full.
        """
        if not self.category_ids:
            return None
        try:
            channels = await self.discord.list_guild_channels(self.guild_id)
        except httpx.HTTPError:
            logger.exception("Failed to list guild channels")
            return self.category_ids[0]
        counts = _children_per_parent(channels)
        for category_id in self.category_ids:
            if counts.get(category_id, 0) < self.max_channels_per_category:
                return category_id
        raise InvalidStateError(
            "All deal categories are full right now. Please contact staff."
        )

    async def create_deal_channel(
        self, name: str, claimant_id: str, category_id: str | None
    ) -> dict[str, object]:
        """Create a private deal channel; HTTP errors propagate."""
        overwrites: list[dict[str, object]] = [
            {"id": self.guild_id, "type": _ROLE_OVERWRITE, "deny": str(VIEW_CHANNEL)},
            {
                "id": claimant_id,
                "type": _MEMBER_OVERWRITE,
                "allow": str(MEMBER_PERMISSIONS),
            },
        ]
        overwrites.extend(
            {"id": role_id, "type": _ROLE_OVERWRITE, "allow": str(MEMBER_PERMISSIONS)}
            for role_id in self.approver_role_ids
        )
        payload: dict[str, object] = {
            "name": name,
            "type": _GUILD_TEXT,
            "permission_overwrites": overwrites,
        }
        if category_id:
            payload["parent_id"] = category_id
        return await self.discord.create_channel(self.guild_id, payload)

    def delete_channel_later(self, channel_id: str) -> asyncio.Task[None]:
        """Schedule deletion of a deal channel after the grace delay."""
        task = asyncio.get_running_loop().create_task(
            self._delete_channel_after_delay(channel_id)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _delete_channel_after_delay(self, channel_id: str) -> None:
        await asyncio.sleep(self.channel_delete_delay)
        try:
            await self.discord.delete_channel(channel_id)
        except Exception:
            logger.exception(
                "Failed to delete deal channel", extra={"channel_id": channel_id}
            )

    async def drain(self) -> None:
        """Wait for scheduled channel deletions."""
        if self._pending:
            await asyncio.gather(*list(self._pending))


def _children_per_parent(channels: Iterable[dict[str, object]]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for channel in channels:
        parent_id = channel.get("parent_id")
        if parent_id:
            counts[str(parent_id)] = counts.get(str(parent_id), 0) + 1
    return counts

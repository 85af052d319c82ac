"""Tests for platform notifications and message rendering."""

import asyncio

import httpx

from tests.fakes import FakeDiscordClient, make_deal
from wtb_deals.services.messages import (
    EXPIRED_TITLE_PREFIX,
    OutboundMessage,
    expired_listing,
    format_listing_panel,
)
from wtb_deals.services.notifications import NotificationDispatcher, deal_channel_name


class _BrokenDiscord(FakeDiscordClient):
    async def send_message(self, channel_id, payload):  # type: ignore[no-untyped-def]
        request = httpx.Request("POST", "https://discord.test")
        raise httpx.ConnectError("offline", request=request)

    async def list_guild_channels(self, guild_id):  # type: ignore[no-untyped-def]
        request = httpx.Request("GET", "https://discord.test")
        raise httpx.ConnectError("offline", request=request)


def test_deal_channel_name() -> None:
    assert deal_channel_name(make_deal()) == "wtb-dd1391-100-44"
    assert deal_channel_name(make_deal(sku="AB 12/3", size="42 ⅔")) == "wtb-ab-123-42"
    assert deal_channel_name(make_deal(sku="", size="")) == "wtb"


def test_send_failures_are_swallowed() -> None:
    notifier = NotificationDispatcher(
        discord=_BrokenDiscord(), guild_id="100", category_ids=["900"]
    )

    sent = asyncio.run(notifier.send("c1", OutboundMessage(content="hi")))
    dm = asyncio.run(notifier.send_dm("u1", OutboundMessage(content="hi")))
    category = asyncio.run(notifier.pick_deal_category())

    assert sent is None
    assert dm is None
    assert category == "900"


def test_edit_or_send_falls_back_to_send(
    notifier: NotificationDispatcher, discord_client: FakeDiscordClient
) -> None:
    discord_client.fail_edit = True

    asyncio.run(
        notifier.edit_or_send("c1", "m1", OutboundMessage(content="updated"))
    )

    assert discord_client.sent_to("c1")[0]["content"] == "updated"


def test_pick_category_without_configuration(
    discord_client: FakeDiscordClient,
) -> None:
    notifier = NotificationDispatcher(discord=discord_client, guild_id="100")

    assert asyncio.run(notifier.pick_deal_category()) is None


def test_listing_uses_configured_channel_fallback(
    discord_client: FakeDiscordClient,
) -> None:
    notifier = NotificationDispatcher(
        discord=discord_client, guild_id="100", listings_channel_id="wtb-feed"
    )

    changed = asyncio.run(
        notifier.set_listing_claim_enabled(
            make_deal(listing_channel_id=None), enabled=True
        )
    )
    unresolved = asyncio.run(
        notifier.set_listing_claim_enabled(
            make_deal(claim_message_id=None), enabled=True
        )
    )

    assert changed is True
    assert unresolved is False
    channel_id, message_id, payload = discord_client.edits[0]
    assert (channel_id, message_id) == ("wtb-feed", "listing-msg-rec1")
    assert payload["components"][0]["components"][0]["disabled"] is False


def test_expired_listing_keeps_existing_prefix() -> None:
    message = {
        "embeds": [{"title": f"{EXPIRED_TITLE_PREFIX}WTB: Samba"}],
        "components": [{"type": 1, "components": [{"type": 2, "custom_id": "x"}]}],
    }

    edit = expired_listing(message)

    assert edit.embeds[0]["title"] == f"{EXPIRED_TITLE_PREFIX}WTB: Samba"
    assert edit.components[0]["components"][0]["disabled"] is True
    assert edit.to_payload()["allowed_mentions"] == {"parse": ["users"]}


def test_format_listing_panel_numbers_listings() -> None:
    panel = format_listing_panel([make_deal("a", sku="AA1"), make_deal("b")])

    assert panel.splitlines()[1:] == [
        "**1.** `AA1` — **44**",
        "**2.** `DD1391-100` — **44**",
    ]

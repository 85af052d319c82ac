"""Tests for relay event handling."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from tests.conftest import CLAIMANT, STAFF_ROLE
from tests.fakes import FakeClock, FakeDiscordClient, InMemoryDealRepository, make_deal
from wtb_deals.api.app import create_app
from wtb_deals.domain.deals import DealStatus
from wtb_deals.services.deals import DealService


def _button(custom_id: str, actor_id: str = CLAIMANT, **extra: object) -> dict:
    return {
        "type": "button",
        "custom_id": custom_id,
        "actor_id": actor_id,
        "channel_id": extra.pop("channel_id", "listings"),
        "message_id": "msg-0",
        **extra,
    }


def _post(client: TestClient, event_id: str, event: dict, **kwargs: object):
    return client.post(
        "/platform/events", json={"event_id": event_id, "event": event}, **kwargs
    )


def test_health(container) -> None:
    client = TestClient(create_app(container))

    assert client.get("/health").json() == {"status": "ok"}


def test_claim_button_returns_modal(
    container, deal_repository: InMemoryDealRepository
) -> None:
    deal_repository.add(make_deal())
    client = TestClient(create_app(container))

    response = _post(client, "evt-1", _button("claim:rec1"))

    assert response.status_code == 200
    reply = response.json()["reply"]
    assert reply["modal"]["custom_id"] == "claim_modal:rec1"
    field_ids = [
        row["components"][0]["custom_id"] for row in reply["modal"]["components"]
    ]
    assert field_ids == ["seller_id", "vat_type"]


def test_claim_form_claims_deal(
    container,
    deal_repository: InMemoryDealRepository,
    discord_client: FakeDiscordClient,
) -> None:
    deal_repository.add(make_deal())
    client = TestClient(create_app(container))

    response = _post(
        client,
        "evt-2",
        {
            "type": "form",
            "custom_id": "claim_modal:rec1",
            "actor_id": CLAIMANT,
            "field_values": {"seller_id": "00001", "vat_type": "Margin"},
        },
    )

    reply = response.json()["reply"]
    assert "Deal claimed" in reply["content"]
    assert reply["ephemeral"] is True
    assert deal_repository.get("rec1").status == DealStatus.CLAIM_PROCESSING
    assert len(discord_client.created_channels) == 1


def test_duplicate_event_is_processed_once(
    container,
    deal_repository: InMemoryDealRepository,
    discord_client: FakeDiscordClient,
) -> None:
    deal_repository.add(make_deal())
    client = TestClient(create_app(container))
    event = {
        "type": "form",
        "custom_id": "claim_modal:rec1",
        "actor_id": CLAIMANT,
        "field_values": {"seller_id": "1", "vat_type": "VAT21"},
    }

    first = _post(client, "evt-dup", event)
    second = _post(client, "evt-dup", event)

    assert first.json()["status"] == "ok"
    assert second.json() == {"status": "duplicate"}
    assert len(discord_client.created_channels) == 1


def test_event_dedupe_entries_lapse_after_window(container, clock: FakeClock) -> None:
    client = TestClient(create_app(container))
    for index in range(20):
        _post(client, f"evt-old-{index}", _button("my_listings"))
    clock.advance(minutes=11)

    replayed = _post(client, "evt-old-0", _button("my_listings"))

    assert replayed.json()["status"] == "ok"
    assert container.event_cache.prune() == 0
    assert container.event_cache.live_items() == [("event:evt-old-0", True)]


def test_errors_render_as_single_reply(
    container, deal_repository: InMemoryDealRepository
) -> None:
    deal_repository.add(make_deal(status=DealStatus.CLAIM_PROCESSING))
    client = TestClient(create_app(container))

    unauthorized = _post(client, "evt-3", _button("confirm_deal:rec1"))
    missing = _post(client, "evt-4", _button("claim:nope"))
    stale = _post(client, "evt-5", _button("something_else:rec1"))

    assert unauthorized.json()["reply"]["content"] == (
        "❌ Only staff can confirm deals."
    )
    assert missing.json()["reply"]["content"] == "❌ Could not find that deal."
    assert stale.json()["reply"]["content"] == "This button is no longer active."


def test_unexpected_errors_use_generic_reply(
    container, deal_service: DealService, monkeypatch: pytest.MonkeyPatch
) -> None:
    def boom(deal_id: str) -> None:
        raise RuntimeError("store exploded")

    monkeypatch.setattr(deal_service, "claim_form", boom)
    client = TestClient(create_app(container))

    response = _post(client, "evt-6", _button("claim:rec1"))

    content = response.json()["reply"]["content"]
    assert content.startswith("Something went wrong")
    assert "store exploded" not in content


def test_relay_token_is_enforced(container) -> None:
    container.settings.relay_token = "relay-secret"
    client = TestClient(create_app(container))

    rejected = _post(client, "evt-7", _button("my_listings"))
    accepted = _post(
        client,
        "evt-8",
        _button("my_listings"),
        headers={"X-Relay-Token": "relay-secret"},
    )

    assert rejected.status_code == 401
    assert accepted.status_code == 200
    assert "no active WTBs" in accepted.json()["reply"]["content"]


def test_channel_pictures_are_recorded_and_answered_in_channel(
    container,
    deal_service: DealService,
    deal_repository: InMemoryDealRepository,
    discord_client: FakeDiscordClient,
) -> None:
    deal_repository.add(make_deal())
    asyncio.run(deal_service.claim("rec1", CLAIMANT, "1", "Margin"))
    asyncio.run(deal_service.confirm_identity("rec1", CLAIMANT, "chan-1", None))
    client = TestClient(create_app(container))

    response = _post(
        client,
        "evt-9",
        {
            "type": "channel_message",
            "actor_id": CLAIMANT,
            "channel_id": "chan-1",
            "message_id": "m-1",
            "attachments": [
                {
                    "id": "att-1",
                    "url": "https://cdn.example/att-1.jpg",
                    "filename": "att-1.jpg",
                    "content_type": "image/jpeg",
                }
            ],
        },
    )

    assert response.json() == {"status": "ok"}
    assert deal_repository.get("rec1").evidence == {
        "att-1": "https://cdn.example/att-1.jpg"
    }
    assert "1/6" in discord_client.sent_to("chan-1")[-1]["content"]


def test_staff_pictures_in_deal_channel_are_ignored_silently(
    container,
    deal_service: DealService,
    deal_repository: InMemoryDealRepository,
    discord_client: FakeDiscordClient,
) -> None:
    deal_repository.add(make_deal())
    asyncio.run(deal_service.claim("rec1", CLAIMANT, "1", "Margin"))
    asyncio.run(deal_service.confirm_identity("rec1", CLAIMANT, "chan-1", None))
    posted_before = len(discord_client.sent_to("chan-1"))
    client = TestClient(create_app(container))

    response = _post(
        client,
        "evt-staff-pic",
        {
            "type": "channel_message",
            "actor_id": "staff-1",
            "channel_id": "chan-1",
            "message_id": "m-9",
            "attachments": [
                {
                    "id": "s-1",
                    "url": "https://cdn.example/s-1.png",
                    "filename": "s-1.png",
                }
            ],
        },
    )

    assert response.json() == {"status": "ignored"}
    assert deal_repository.get("rec1").evidence == {}
    assert len(discord_client.sent_to("chan-1")) == posted_before


def test_messages_without_files_or_from_bots_are_ignored(container) -> None:
    client = TestClient(create_app(container))
    message = {
        "type": "direct_message",
        "actor_id": "buyer-1",
        "channel_id": "dm-buyer-1",
        "message_id": "m-2",
        "content": "hello",
    }
    bot_message = {
        **message,
        "author_is_bot": True,
        "attachments": [{"id": "x", "url": "https://cdn.example/x.pdf"}],
    }

    assert _post(client, "evt-10", message).json() == {"status": "ignored"}
    assert _post(client, "evt-11", bot_message).json() == {"status": "ignored"}


def test_unrelated_channel_pictures_are_ignored(container) -> None:
    client = TestClient(create_app(container))

    response = _post(
        client,
        "evt-12",
        {
            "type": "channel_message",
            "actor_id": "someone",
            "channel_id": "general",
            "message_id": "m-3",
            "attachments": [
                {"id": "a", "url": "https://cdn.example/a.png", "filename": "a.png"}
            ],
        },
    )

    assert response.json() == {"status": "ignored"}


def test_staff_approval_via_button(
    container,
    deal_repository: InMemoryDealRepository,
    discord_client: FakeDiscordClient,
) -> None:
    evidence = {f"a{i}": f"https://cdn.example/a{i}.jpg" for i in range(6)}
    deal_repository.add(
        make_deal(
            status=DealStatus.CLAIM_PROCESSING,
            pre_claim_status=DealStatus.OUTSOURCE,
            claimed_channel_id="chan-7",
            claimed_seller_discord_id=CLAIMANT,
            claimed_seller_code="SE-00001",
            claimed_seller_confirmed=True,
            evidence=evidence,
        )
    )
    client = TestClient(create_app(container))

    response = _post(
        client,
        "evt-13",
        _button(
            "confirm_deal:rec1",
            actor_id="staff-1",
            channel_id="chan-7",
            actor_roles=[STAFF_ROLE],
        ),
    )

    assert response.json()["reply"]["content"] == "✅ Deal confirmed."
    assert deal_repository.get("rec1").approved_at is not None
    assert discord_client.sent_to("dm-buyer-1")


def test_shutdown_waits_for_scheduled_channel_deletion(
    container,
    deal_service: DealService,
    deal_repository: InMemoryDealRepository,
    discord_client: FakeDiscordClient,
) -> None:
    deal_repository.add(make_deal())
    asyncio.run(deal_service.claim("rec1", CLAIMANT, "1", "Margin"))
    container.notifier.channel_delete_delay = 0.2

    with TestClient(create_app(container)) as client:
        response = _post(
            client, "evt-cancel", _button("cancel_deal:rec1", channel_id="chan-1")
        )
        assert "cancelled" in response.json()["reply"]["content"]

    assert discord_client.deleted_channels == ["chan-1"]

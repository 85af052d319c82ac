"""Tests for the listing expiry sweeper."""

import asyncio
import contextlib
from dataclasses import dataclass
from datetime import timedelta

import pytest

from tests.fakes import FakeClock, FakeDiscordClient, InMemoryDealRepository, make_deal
from wtb_deals.domain.deals import DealQuery, DealStatus
from wtb_deals.domain.errors import ExternalIOError
from wtb_deals.services.expiry import ExpirySweeper
from wtb_deals.services.messages import EXPIRED_TITLE_PREFIX
from wtb_deals.services.notifications import NotificationDispatcher


@dataclass
class _FlakyRepository(InMemoryDealRepository):
    failing_id: str = ""

    def update(self, deal_id, fields, expect=None):  # type: ignore[no-untyped-def]
        if deal_id == self.failing_id:
            raise ExternalIOError()
        return super().update(deal_id, fields, expect)


@dataclass
class _StaleRepository(InMemoryDealRepository):
    """Returns a snapshot taken before the listing was claimed."""

    def query(self, query: DealQuery):  # type: ignore[no-untyped-def]
        return [make_deal()]


def test_sweep_expires_stale_unclaimed_listings(
    expiry_sweeper: ExpirySweeper,
    deal_repository: InMemoryDealRepository,
    discord_client: FakeDiscordClient,
    clock: FakeClock,
) -> None:
    deal_repository.add(make_deal())
    deal_repository.add(make_deal("fresh", created_at=clock.now))
    deal_repository.add(
        make_deal(
            "claimed",
            status=DealStatus.CLAIM_PROCESSING,
            claimed_channel_id="chan-9",
        )
    )
    clock.advance(hours=22)

    report = asyncio.run(expiry_sweeper.sweep())

    assert report.to_dict() == {"expired": ["rec1"], "skipped": [], "failed": []}
    assert deal_repository.get("rec1").status == DealStatus.EXPIRED
    assert deal_repository.get("fresh").status == DealStatus.OUTSOURCE
    assert deal_repository.get("claimed").status == DealStatus.CLAIM_PROCESSING
    channel_id, message_id, payload = discord_client.edits[0]
    assert (channel_id, message_id) == ("listings", "listing-msg-rec1")
    assert payload["embeds"][0]["title"] == f"{EXPIRED_TITLE_PREFIX}WTB: Dunk Low Panda"
    assert payload["components"][0]["components"][0]["disabled"] is True


def test_sweep_expires_listing_without_message(
    expiry_sweeper: ExpirySweeper,
    deal_repository: InMemoryDealRepository,
    discord_client: FakeDiscordClient,
    clock: FakeClock,
) -> None:
    deal_repository.add(make_deal(claim_message_id=None))
    clock.advance(hours=24)

    report = asyncio.run(expiry_sweeper.sweep())

    assert report.expired == ["rec1"]
    assert discord_client.edits == []


def test_sweep_survives_edit_failure(
    expiry_sweeper: ExpirySweeper,
    deal_repository: InMemoryDealRepository,
    discord_client: FakeDiscordClient,
    clock: FakeClock,
) -> None:
    deal_repository.add(make_deal())
    discord_client.fail_edit = True
    clock.advance(hours=24)

    report = asyncio.run(expiry_sweeper.sweep())

    assert report.expired == ["rec1"]
    assert deal_repository.get("rec1").status == DealStatus.EXPIRED


def test_sweep_skips_listing_claimed_meanwhile(
    notifier: NotificationDispatcher, clock: FakeClock
) -> None:
    repository = _StaleRepository()
    repository.add(
        make_deal(status=DealStatus.CLAIM_PROCESSING, claimed_channel_id="chan-1")
    )
    sweeper = ExpirySweeper(deals=repository, notifier=notifier, clock=clock)
    clock.advance(hours=24)

    report = asyncio.run(sweeper.sweep())

    assert report.skipped == ["rec1"]
    assert repository.get("rec1").status == DealStatus.CLAIM_PROCESSING


def test_sweep_isolates_record_failures(
    notifier: NotificationDispatcher, clock: FakeClock
) -> None:
    repository = _FlakyRepository(failing_id="rec1")
    repository.add(make_deal())
    repository.add(make_deal("rec2"))
    sweeper = ExpirySweeper(deals=repository, notifier=notifier, clock=clock)
    clock.advance(hours=24)

    report = asyncio.run(sweeper.sweep())

    assert report.failed == ["rec1"]
    assert report.expired == ["rec2"]


def test_sweep_respects_batch_size(
    deal_repository: InMemoryDealRepository,
    notifier: NotificationDispatcher,
    clock: FakeClock,
) -> None:
    for deal_id in ("a", "b", "c"):
        deal_repository.add(make_deal(deal_id))
    sweeper = ExpirySweeper(
        deals=deal_repository, notifier=notifier, batch_size=2, clock=clock
    )
    clock.advance(hours=24)

    first = asyncio.run(sweeper.sweep())
    second = asyncio.run(sweeper.sweep())

    assert len(first.expired) == 2
    assert len(second.expired) == 1


def test_run_forever_sweeps_until_cancelled(
    expiry_sweeper: ExpirySweeper,
    deal_repository: InMemoryDealRepository,
    clock: FakeClock,
) -> None:
    deal_repository.add(make_deal())
    clock.advance(hours=24)

    async def run() -> None:
        task = asyncio.create_task(
            expiry_sweeper.run_forever(interval_seconds=3600, initial_delay_seconds=0)
        )
        await asyncio.sleep(0.05)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    asyncio.run(run())

    assert deal_repository.get("rec1").status == DealStatus.EXPIRED


def test_sweep_expires_only_stale_unclaimed_listing_without_channel(
    expiry_sweeper: ExpirySweeper,
    deal_repository: InMemoryDealRepository,
    clock: FakeClock,
) -> None:
    old = clock.now - timedelta(hours=30)
    deal_repository.add(make_deal("stale", created_at=old))
    deal_repository.add(make_deal("young", created_at=clock.now - timedelta(hours=1)))
    deal_repository.add(
        make_deal("processing", status=DealStatus.CLAIM_PROCESSING, created_at=old)
    )
    deal_repository.add(
        make_deal("with-channel", claimed_channel_id="chan-3", created_at=old)
    )

    report = asyncio.run(expiry_sweeper.sweep())

    assert report.expired == ["stale"]
    assert deal_repository.get("with-channel").status == DealStatus.OUTSOURCE


class _ClosedDiscordClient(FakeDiscordClient):
    async def get_message(self, channel_id, message_id):  # type: ignore[no-untyped-def]
        raise RuntimeError("Cannot send a request, as the client has been closed.")


def test_sweep_keeps_going_when_listing_update_crashes(
    deal_repository: InMemoryDealRepository, clock: FakeClock
) -> None:
    notifier = NotificationDispatcher(discord=_ClosedDiscordClient(), guild_id="100")
    deal_repository.add(make_deal("a"))
    deal_repository.add(make_deal("b"))
    sweeper = ExpirySweeper(deals=deal_repository, notifier=notifier, clock=clock)
    clock.advance(hours=24)

    report = asyncio.run(sweeper.sweep())

    assert report.expired == ["a", "b"]
    assert deal_repository.get("a").status == DealStatus.EXPIRED
    assert deal_repository.get("b").status == DealStatus.EXPIRED


def test_sweep_records_unexpected_failure_and_continues(
    notifier: NotificationDispatcher, clock: FakeClock
) -> None:
    class _BrokenRepository(InMemoryDealRepository):
        def update(self, deal_id, fields, expect=None):  # type: ignore[no-untyped-def]
            if deal_id == "a":
                raise ValueError("bad row")
            return super().update(deal_id, fields, expect)

    repository = _BrokenRepository()
    repository.add(make_deal("a"))
    repository.add(make_deal("b"))
    sweeper = ExpirySweeper(deals=repository, notifier=notifier, clock=clock)
    clock.advance(hours=24)

    report = asyncio.run(sweeper.sweep())

    assert report.failed == ["a"]
    assert report.expired == ["b"]


def test_run_forever_survives_a_crashing_sweep(
    expiry_sweeper: ExpirySweeper, monkeypatch: pytest.MonkeyPatch
) -> None:
    calls = []

    async def crash():
        calls.append(1)
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(expiry_sweeper, "sweep", crash)

    async def run() -> None:
        task = asyncio.create_task(
            expiry_sweeper.run_forever(interval_seconds=0, initial_delay_seconds=0)
        )
        await asyncio.sleep(0.05)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    asyncio.run(run())

    assert len(calls) > 1

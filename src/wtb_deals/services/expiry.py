"""Periodic expiry of unclaimed listings."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from wtb_deals.domain.deals import UNCLAIMED_STATUSES, Deal, DealQuery
from wtb_deals.services.cache import utcnow
from wtb_deals.services.deals import DealRepository
from wtb_deals.services.notifications import NotificationDispatcher
from wtb_deals.services.transitions import DealEvent, next_status

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Outcome of one sweep."""

    expired: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        """Serialize for the admin API."""
        return {
            "expired": self.expired,
            "skipped": self.skipped,
            "failed": self.failed,
        }


@dataclass
class ExpirySweeper:
    """Expires listings that stayed unclaimed past the threshold."""

    deals: DealRepository
    notifier: NotificationDispatcher
    expiry_hours: float = 24
    batch_size: int = 100
    clock: Callable[[], datetime] = utcnow

    async def sweep(self) -> SweepReport:
        """Run a single sweep over the oldest stale listings."""
        cutoff = self.clock() - timedelta(hours=self.expiry_hours)
        candidates = self.deals.query(
            DealQuery(
                statuses=UNCLAIMED_STATUSES,
                claimed_channel_blank=True,
                created_before=cutoff,
                limit=self.batch_size,
            )
        )
        report = SweepReport()
        for deal in candidates:
            try:
                expired = await self._expire(deal)
            except Exception:
                logger.exception("Failed to expire listing", extra={"deal_id": deal.id})
                report.failed.append(deal.id)
                continue
            (report.expired if expired else report.skipped).append(deal.id)
        if report.expired or report.failed:
            logger.info(
                "Expiry sweep finished",
                extra={
                    "expired": len(report.expired),
                    "skipped": len(report.skipped),
                    "failed": len(report.failed),
                },
            )
        return report

    async def _expire(self, deal: Deal) -> bool:
        target = next_status(deal, DealEvent.EXPIRE)
        expired = self.deals.update(
            deal.id,
            {"status": target},
            expect={"status": deal.status, "claimed_channel_id": None},
        )
        if not expired:
            logger.info("Listing changed before expiry", extra={"deal_id": deal.id})
            return False
        await self.notifier.mark_listing_expired(deal)
        return True

    async def run_forever(
        self, interval_seconds: float = 600, initial_delay_seconds: float = 15
    ) -> None:
        """Sweep on a fixed interval until cancelled."""
        await asyncio.sleep(initial_delay_seconds)
        while True:
            try:
                await self.sweep()
            except Exception:
                logger.exception("Expiry sweep failed")
            await asyncio.sleep(interval_seconds)
